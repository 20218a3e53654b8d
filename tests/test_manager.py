import json

import pytest

from smartcrm_batch.core.batching.errors import (JobNotFoundError, SubmissionError,
                                                  ValidationError)
from smartcrm_batch.core.batching.manager import BatchOrchestrator
from smartcrm_batch.core.batching.pricing import DEFAULT_ITEM_RATES
from smartcrm_batch.core.batching.settings import BatchSettings
from smartcrm_batch.core.batching.store import JobStatus, ProcessingMode, TaskType
from smartcrm_batch.core.utils.entities import InMemoryEntityStore

from conftest import CAMPAIGN, FakeProvider, make_result_line, to_artifact


def test_deferred_enrichment_is_queued_with_discounted_cost(contacts):
    provider = FakeProvider(['in_progress'])
    orchestrator = BatchOrchestrator(
        provider, contacts,
        settings=BatchSettings(initial_delays={'immediate': 60, 'deferred': 60})
    )
    try:
        job = orchestrator.enrich_contacts(['c1', 'c2', 'c3'], mode='deferred')
    finally:
        orchestrator.shutdown(timeout=5)

    rate = DEFAULT_ITEM_RATES[TaskType.CONTACT_ENRICHMENT]
    assert job.item_count == 3
    assert job.status == JobStatus.QUEUED
    assert job.estimated_cost == pytest.approx(3 * rate * 0.5)
    assert job.type == TaskType.CONTACT_ENRICHMENT
    assert job.processing_mode == ProcessingMode.DEFERRED
    assert job.metadata['batch_id'] == 'batch-1'
    assert job.metadata['request_count'] == 9
    assert job.metadata['completion_window'] == '24h'

    batch = provider.batches['batch-1']
    assert batch['completion_window'] == '24h'
    assert batch['metadata'] == {'job_id': job.id, 'created_by': 'smartcrm'}


def test_completed_batch_updates_every_contact(orchestrator, contacts):
    job = orchestrator.enrich_contacts(['c1', 'c2', 'c3'], analysis_types=['scoring'])
    job = orchestrator.wait(job.id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.completed_at is not None
    assert len(job.results) == 3
    assert job.metadata['dispatch']['applied'] == 3
    for contact_id in ('c1', 'c2', 'c3'):
        contact = contacts.get(contact_id)
        assert contact['ai_scoring_analysis']['score'] == 80
        assert 'lastEnriched' in contact


@pytest.mark.parametrize("entity_ids", [[], None, 'c1', ['c_1'], ['']])
def test_invalid_ids_never_create_a_job(orchestrator, provider, entity_ids):
    with pytest.raises(ValidationError):
        orchestrator.submit(TaskType.SOCIAL_RESEARCH, entity_ids)
    assert orchestrator.list_jobs() == []
    assert provider.uploads == {}


@pytest.mark.parametrize("task_type, params, mode", [
    ('contact_enrichment', {'analysis_types': ['horoscope']}, 'deferred'),
    ('email_generation', {'subject': 'Hi'}, 'deferred'),
    ('social_research', None, 'overnight'),
    ('video_generation', None, 'deferred'),
])
def test_invalid_params_never_create_a_job(orchestrator, task_type, params, mode):
    with pytest.raises(ValidationError):
        orchestrator.submit(task_type, ['c1'], params, mode)
    assert orchestrator.list_jobs() == []


@pytest.mark.parametrize("analysis_types", [5, True, 'scoring'])
def test_malformed_analysis_types_are_validation_errors(orchestrator, provider, analysis_types):
    with pytest.raises(ValidationError):
        orchestrator.enrich_contacts(['c1'], analysis_types=analysis_types)
    assert orchestrator.list_jobs() == []
    assert provider.uploads == {}


def test_unknown_entities_are_rejected(orchestrator, provider):
    with pytest.raises(ValidationError):
        orchestrator.research_social_profiles(['nobody', 'ghost'])
    assert orchestrator.list_jobs() == []
    assert provider.uploads == {}


def test_missing_entities_are_skipped(orchestrator, provider):
    job = orchestrator.research_social_profiles(['c1', 'ghost', 'c2'])
    assert job.item_count == 3
    assert job.metadata['missing_entity_ids'] == ['ghost']
    assert job.metadata['request_count'] == 2
    custom_ids = [r['custom_id'] for r in provider.requests(job.metadata['batch_id'])]
    assert custom_ids == ['social_c1_insights_0', 'social_c2_insights_2']


def test_pipeline_analysis_requires_deals(contacts, provider, settings):
    orchestrator = BatchOrchestrator(provider, contacts, settings=settings)
    with pytest.raises(ValidationError):
        orchestrator.analyze_pipeline(['d1'])


def test_pipeline_analysis_updates_deals(orchestrator, deals):
    job = orchestrator.analyze_pipeline(['d1', 'd2'], mode='immediate')
    job = orchestrator.wait(job.id, timeout=5)
    assert job.status == JobStatus.COMPLETED
    deal = deals.get('d1')
    assert deal['riskScore'] == 42
    assert deal['nextActions'] == ['call back']
    assert 'lastAnalyzed' in deal


def test_campaign_emails(orchestrator, contacts, provider):
    job = orchestrator.generate_campaign_emails(['c1', 'c2'], CAMPAIGN, mode='immediate')
    assert provider.batches[job.metadata['batch_id']]['completion_window'] == '24h'
    job = orchestrator.wait(job.id, timeout=5)
    assert job.status == JobStatus.COMPLETED
    assert contacts.get('c1')['aiGeneratedEmail'].startswith('Subject: Hello')
    assert job.metadata['params'] == CAMPAIGN


def test_immediate_job_starts_processing(contacts):
    provider = FakeProvider(['in_progress'])
    orchestrator = BatchOrchestrator(
        provider, contacts,
        settings=BatchSettings(initial_delays={'immediate': 60, 'deferred': 60})
    )
    try:
        job = orchestrator.research_social_profiles(['c1'], mode='immediate')
    finally:
        orchestrator.shutdown(timeout=5)
    assert job.status == JobStatus.PROCESSING


def test_garbage_result_record_is_skipped(orchestrator, provider, contacts):
    provider.output_artifact = to_artifact([
        make_result_line('social_c1_insights_0', json.dumps({'platforms': ['linkedin']})),
        make_result_line('garbage', '{}'),
        make_result_line('social_c2_insights_1', json.dumps({'platforms': ['x']})),
    ])
    job = orchestrator.research_social_profiles(['c1', 'c2'])
    job = orchestrator.wait(job.id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.metadata['dispatch']['applied'] == 2
    assert job.metadata['dispatch']['skipped'] == 1
    assert contacts.get('c1')['socialInsights'] == {'platforms': ['linkedin']}
    assert contacts.get('c2')['socialInsights'] == {'platforms': ['x']}


def test_raw_line_separator_in_model_output(orchestrator, provider, contacts):
    insights = {'summary': 'Founder\u2028Keynote speaker'}
    provider.output_artifact = to_artifact([
        make_result_line('social_c1_insights_0', json.dumps(insights, ensure_ascii=False)),
    ], ensure_ascii=False)
    job = orchestrator.research_social_profiles(['c1'])
    job = orchestrator.wait(job.id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.metadata['dispatch']['applied'] == 1
    assert contacts.get('c1')['socialInsights'] == insights


def test_remote_failure_fails_job(orchestrator, provider, contacts):
    provider.statuses = ['in_progress', 'failed']
    job = orchestrator.research_social_profiles(['c1', 'c2'])
    job = orchestrator.wait(job.id, timeout=5)

    assert job.status == JobStatus.FAILED
    assert job.results is None
    assert job.completed_at is not None
    assert provider.download_calls == 0
    assert 'socialInsights' not in contacts.get('c1')


@pytest.mark.parametrize("failing_step", ['upload_error', 'create_error'])
def test_submission_failure(orchestrator, provider, failing_step):
    setattr(provider, failing_step, RuntimeError("provider unavailable"))
    with pytest.raises(SubmissionError) as excinfo:
        orchestrator.research_social_profiles(['c1'])

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    job = orchestrator.get_job(excinfo.value.job_id)
    assert job.status == JobStatus.FAILED
    assert 'provider unavailable' in job.error
    assert orchestrator.monitors.get(job.id) is None
    assert orchestrator.wait(job.id, timeout=1).status == JobStatus.FAILED


def test_cancel_stops_monitoring(contacts):
    provider = FakeProvider(['in_progress'])
    orchestrator = BatchOrchestrator(
        provider, contacts,
        settings=BatchSettings(initial_delays={'immediate': 0, 'deferred': 0}, poll_interval=60)
    )
    try:
        job = orchestrator.research_social_profiles(['c1'])
        cancelled = orchestrator.cancel(job.id, remote=True)
        assert cancelled.status == JobStatus.FAILED
        assert cancelled.error == "Cancelled by caller"
        assert provider.cancelled == [job.metadata['batch_id']]
        assert orchestrator.wait(job.id, timeout=5).status == JobStatus.FAILED

        # Cancelling again leaves the job as it is
        assert orchestrator.cancel(job.id).error == "Cancelled by caller"
    finally:
        orchestrator.shutdown(timeout=5)


def test_cancel_tolerates_remote_errors(contacts):
    provider = FakeProvider(['in_progress'])
    provider.cancel_error = RuntimeError("already finalizing")
    orchestrator = BatchOrchestrator(
        provider, contacts,
        settings=BatchSettings(initial_delays={'immediate': 60, 'deferred': 60})
    )
    try:
        job = orchestrator.research_social_profiles(['c1'])
        assert orchestrator.cancel(job.id, remote=True).status == JobStatus.FAILED
    finally:
        orchestrator.shutdown(timeout=5)


def test_cancel_unknown_job(orchestrator):
    with pytest.raises(JobNotFoundError):
        orchestrator.cancel('batch_missing')
    with pytest.raises(JobNotFoundError):
        orchestrator.wait('batch_missing')


def test_monitor_timeout_fails_job(contacts):
    provider = FakeProvider(['validating'])
    orchestrator = BatchOrchestrator(
        provider, contacts,
        settings=BatchSettings(
            initial_delays={'immediate': 0, 'deferred': 0}, poll_interval=0.01, max_polls=3
        )
    )
    try:
        job = orchestrator.research_social_profiles(['c1'])
        job = orchestrator.wait(job.id, timeout=5)
    finally:
        orchestrator.shutdown(timeout=5)
    assert job.status == JobStatus.FAILED
    assert 'status checks' in job.error
    assert job.metadata['poll_count'] == 3


def test_status_walk_is_monotonic(orchestrator, provider):
    provider.statuses = ['validating', 'in_progress', 'in_progress', 'finalizing', 'completed']
    job = orchestrator.research_social_profiles(['c1', 'c2', 'c3'])

    ranks = []
    while True:
        snapshot = orchestrator.get_job(job.id)
        ranks.append(snapshot.status.rank)
        if snapshot.is_terminal:
            break
        orchestrator.wait(job.id, timeout=0.005)
    assert ranks == sorted(ranks)
    assert orchestrator.get_job(job.id).status == JobStatus.COMPLETED


def test_queries(orchestrator, provider):
    social = orchestrator.research_social_profiles(['c1'])
    emails = orchestrator.generate_campaign_emails(['c2'], CAMPAIGN)
    orchestrator.wait_all(timeout=5, show_progress=False)

    assert [j.id for j in orchestrator.list_jobs()] == [social.id, emails.id]
    assert [j.id for j in orchestrator.list_jobs_by_type('email_generation')] == [emails.id]
    assert len(orchestrator.list_jobs_by_status(JobStatus.COMPLETED)) == 2
    assert orchestrator.list_jobs_by_status('failed') == []
    assert orchestrator.get_job('batch_missing') is None
    with pytest.raises(ValidationError):
        orchestrator.list_jobs_by_type('video_generation')


def test_estimate(orchestrator):
    assert orchestrator.estimate('email_generation', 0, 'immediate') == 0
    assert orchestrator.estimate('email_generation', 10, 'deferred') == pytest.approx(
        orchestrator.estimate('email_generation', 10, 'immediate') * 0.5
    )


def test_entity_ids_are_coerced_to_strings(provider, settings):
    contacts = InMemoryEntityStore([{'id': 7, 'name': 'Numeric'}])
    orchestrator = BatchOrchestrator(provider, contacts, settings=settings)
    try:
        job = orchestrator.research_social_profiles([7])
        job = orchestrator.wait(job.id, timeout=5)
    finally:
        orchestrator.shutdown(timeout=5)
    assert job.status == JobStatus.COMPLETED
    assert 'socialInsights' in contacts.get('7')
