import threading

import pytest

from smartcrm_batch.core.batching.errors import InvalidTransitionError, JobNotFoundError
from smartcrm_batch.core.batching.store import (InMemoryJobStore, Job, JobStatus, ProcessingMode,
                                                 TaskType, fail_unless_terminal)


def make_job(job_id='job-1', **kwargs):
    return Job(
        id=job_id,
        type=kwargs.pop('type', TaskType.CONTACT_ENRICHMENT),
        item_count=kwargs.pop('item_count', 3),
        estimated_cost=kwargs.pop('estimated_cost', 0.0045),
        processing_mode=kwargs.pop('processing_mode', ProcessingMode.DEFERRED),
        **kwargs
    )


def test_new_job_is_queued():
    job = make_job()
    assert job.status == JobStatus.QUEUED
    assert job.completed_at is None
    assert job.results is None
    assert not job.is_terminal


def test_forward_transitions():
    job = make_job()
    assert job.advance(JobStatus.PROCESSING)
    assert not job.advance(JobStatus.PROCESSING)
    job.complete([{'correlation_id': 'x'}])
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at is not None
    assert job.results == [{'correlation_id': 'x'}]


def test_queued_may_fail_directly():
    job = make_job()
    job.fail("Remote batch failed")
    assert job.status == JobStatus.FAILED
    assert job.error == "Remote batch failed"
    assert job.completed_at is not None
    assert job.results is None


def test_status_never_moves_backwards():
    job = make_job()
    job.advance(JobStatus.PROCESSING)
    with pytest.raises(InvalidTransitionError):
        job.advance(JobStatus.QUEUED)


@pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED])
@pytest.mark.parametrize("target", list(JobStatus))
def test_terminal_states_are_final(terminal, target):
    job = make_job()
    job.advance(terminal)
    completed_at = job.completed_at
    with pytest.raises(InvalidTransitionError):
        job.advance(target)
    assert job.status == terminal
    assert job.completed_at == completed_at


def test_fail_unless_terminal():
    job = make_job()
    job.complete([])
    assert not fail_unless_terminal(job, "late timeout")
    assert job.status == JobStatus.COMPLETED
    assert job.error is None

    other = make_job('job-2')
    assert fail_unless_terminal(other, "timeout")
    assert other.status == JobStatus.FAILED


def test_to_dict_serializes_enums_and_dates():
    job = make_job()
    job.complete([])
    data = job.to_dict()
    assert data['type'] == 'contact_enrichment'
    assert data['status'] == 'completed'
    assert data['processing_mode'] == 'deferred'
    assert isinstance(data['created_at'], str)
    assert isinstance(data['completed_at'], str)


def test_store_returns_copies():
    store = InMemoryJobStore()
    store.create(make_job())

    snapshot = store.get('job-1')
    snapshot.status = JobStatus.FAILED
    snapshot.metadata['tampered'] = True

    stored = store.get('job-1')
    assert stored.status == JobStatus.QUEUED
    assert 'tampered' not in stored.metadata


def test_store_rejects_duplicates_and_unknown_ids():
    store = InMemoryJobStore()
    store.create(make_job())
    with pytest.raises(ValueError):
        store.create(make_job())
    with pytest.raises(JobNotFoundError):
        store.update('missing', lambda j: None)
    assert store.get('missing') is None


def test_update_returns_mutator_result():
    store = InMemoryJobStore()
    store.create(make_job())
    assert store.update('job-1', lambda j: j.advance(JobStatus.PROCESSING)) is True
    assert store.get('job-1').status == JobStatus.PROCESSING


def test_failed_mutation_leaves_job_unchanged():
    store = InMemoryJobStore()
    store.create(make_job())
    store.update('job-1', lambda j: j.advance(JobStatus.PROCESSING))

    def mutate(job):
        job.metadata['half_written'] = True
        job.advance(JobStatus.QUEUED)

    with pytest.raises(InvalidTransitionError):
        store.update('job-1', mutate)
    stored = store.get('job-1')
    assert stored.status == JobStatus.PROCESSING
    assert 'half_written' not in stored.metadata


def test_concurrent_updates_are_atomic():
    store = InMemoryJobStore()
    store.create(make_job())

    def increment(job):
        job.metadata['count'] = job.metadata.get('count', 0) + 1

    def worker():
        for _ in range(200):
            store.update('job-1', increment)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get('job-1').metadata['count'] == 1600


def test_only_one_concurrent_claim_wins():
    store = InMemoryJobStore()
    store.create(make_job())
    claims = []

    def claim(job):
        if job.is_terminal:
            return False
        job.complete([])
        return True

    def worker():
        claims.append(store.update('job-1', claim))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert claims.count(True) == 1
    assert len(store) == 1
