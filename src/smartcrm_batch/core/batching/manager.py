# -*- coding: utf-8 -*-

import logging
import threading
import time
import uuid
from typing import Dict, Iterable, List, Mapping, Optional

import openai
from tqdm.auto import tqdm

from .correlation import DELIMITER
from .dispatch import ResultDispatcher, ResultHandler
from .errors import JobNotFoundError, SubmissionError, ValidationError
from .files import build_request_envelopes, serialize_envelopes, validate_params
from .jobs import BatchProvider, OpenAIBatchProvider
from .monitor import JobMonitor, MonitorPool
from .pricing import estimate_cost
from .settings import BatchSettings
from .store import (InMemoryJobStore, Job, JobStatus, JobStore, ProcessingMode,
                    TaskType, fail_unless_terminal)
from ..handlers import build_default_handlers
from ..utils.entities import EntityStore


def new_job_id(task_type: TaskType, mode: ProcessingMode) -> str:
    """Unique job id tagged with the task prefix and mode for readability."""
    return f"batch_{task_type.prefix}_{mode.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def _coerce_enum(enum_cls, value, description):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {description} {value!r}. Expected one of: {choices}") from None


class BatchOrchestrator:
    """
    Submits CRM entities to the bulk-inference provider as tracked jobs,
    monitors each job on its own thread and routes results back to the
    entity stores.

    Args:
        provider (BatchProvider): Bulk-inference provider.
        contacts (EntityStore): Contact store, read for contact-based task
            types and updated by their handlers.
        deals (EntityStore, optional): Deal store for pipeline analysis.
        handlers (dict, optional): Routing handler per TaskType. Defaults to
            the handlers built from `contacts` and `deals`.
        store (JobStore, optional): Job store. Defaults to an in-memory store.
        settings (BatchSettings, optional): Engine settings.
    """

    def __init__(
        self,
        provider: BatchProvider,
        contacts: EntityStore,
        deals: Optional[EntityStore] = None,
        handlers: Optional[Mapping[TaskType, ResultHandler]] = None,
        store: Optional[JobStore] = None,
        settings: Optional[BatchSettings] = None
    ):
        self.provider = provider
        self.contacts = contacts
        self.deals = deals
        self.settings = settings or BatchSettings()
        self.store = store or InMemoryJobStore()
        if handlers is None:
            handlers = build_default_handlers(contacts, deals)
        self.dispatcher = ResultDispatcher(self.store, provider, handlers)
        self.monitors = MonitorPool(self._create_monitor)

        self._done_events: Dict[str, threading.Event] = {}
        self._events_lock = threading.Lock()

    @classmethod
    def from_client(
        cls,
        client: openai.OpenAI | openai.AzureOpenAI,
        contacts: EntityStore,
        deals: Optional[EntityStore] = None,
        settings: Optional[BatchSettings] = None,
        **kwargs
    ) -> 'BatchOrchestrator':
        """Build an orchestrator on top of an OpenAI or Azure OpenAI client."""
        settings = settings or BatchSettings()
        provider = OpenAIBatchProvider(client, endpoint=settings.endpoint)
        return cls(provider, contacts, deals=deals, settings=settings, **kwargs)

    #=========================================================================
    # Submission
    #=========================================================================

    def submit(
            self,
            task_type: TaskType | str,
            entity_ids: Iterable[str],
            params: Optional[dict] = None,
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> Job:
        """
        Submit a batch job for the given entities.

        Validation happens before any job exists. Once the job is registered,
        any failure to upload the artifact or open the remote batch fails the
        job and is raised here.

        Args:
            task_type (TaskType | str): Task category.
            entity_ids (list): Contact or deal ids.
            params (dict, optional): Task parameters (see `validate_params`).
            mode (ProcessingMode | str): 'immediate' or 'deferred'.

        Returns:
            Job: Snapshot of the registered job.

        Raises:
            ValidationError: On bad input; no job is created.
            SubmissionError: If the provider rejected the submission.
        """
        task_type = _coerce_enum(TaskType, task_type, "task type")
        mode = _coerce_enum(ProcessingMode, mode, "processing mode")
        entity_ids = self._validate_entity_ids(entity_ids)
        params = validate_params(task_type, params)

        entity_store = self._get_entity_store(task_type)
        entities = {str(e['id']): e for e in entity_store.get_many(entity_ids)}
        missing = [i for i in dict.fromkeys(entity_ids) if i not in entities]
        if missing:
            logging.warning(f"Could not fetch {len(missing)} of {len(entity_ids)} entities: {missing}")
        if not entities:
            raise ValidationError(f"None of the {len(entity_ids)} requested entities were found")

        indexed_entities = [(i, entities[eid]) for i, eid in enumerate(entity_ids) if eid in entities]
        envelopes = build_request_envelopes(
            task_type, indexed_entities, params,
            models=self.settings.models,
            url=self.settings.endpoint
        )
        artifact = serialize_envelopes(envelopes)

        completion_window = self.settings.completion_windows[mode]
        job = Job(
            id=new_job_id(task_type, mode),
            type=task_type,
            item_count=len(entity_ids),
            estimated_cost=estimate_cost(len(entity_ids), mode, task_type, self.settings.pricing),
            processing_mode=mode,
            metadata={
                'entity_ids': entity_ids,
                'params': params,
                'missing_entity_ids': missing,
                'request_count': len(envelopes),
                'completion_window': completion_window,
            }
        )
        self.store.create(job)
        with self._events_lock:
            self._done_events[job.id] = threading.Event()

        try:
            file_id = self.provider.upload_artifact(artifact, f"{job.id}.jsonl")
            batch_id = self.provider.create_batch(
                file_id,
                completion_window,
                metadata={'job_id': job.id, 'created_by': 'smartcrm'}
            )
        except Exception as e:
            logging.error(f"Failed to submit batch job {job.id}: {e}")
            self.store.update(job.id, lambda j: fail_unless_terminal(j, f"Submission failed: {e}"))
            self._mark_done(job.id)
            raise SubmissionError(f"Failed to submit batch job {job.id}: {e}", job_id=job.id) from e

        def opened(j: Job):
            j.metadata['input_file_id'] = file_id
            j.metadata['batch_id'] = batch_id
            if mode == ProcessingMode.IMMEDIATE:
                j.advance(JobStatus.PROCESSING)

        self.store.update(job.id, opened)
        self.monitors.start(job.id, mode=mode)

        logging.info(
            f"Batch {task_type.value} queued as {job.id}: {len(entity_ids)} entities, "
            f"{len(envelopes)} requests, estimated cost: ${job.estimated_cost:,.4f}"
        )
        return self.get_job(job.id)

    def enrich_contacts(
            self,
            contact_ids: Iterable[str],
            analysis_types: Optional[List[str]] = None,
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> Job:
        """Mass contact enrichment; one request per contact and analysis type."""
        params = {} if analysis_types is None else {'analysis_types': analysis_types}
        return self.submit(TaskType.CONTACT_ENRICHMENT, contact_ids, params, mode)

    def generate_campaign_emails(
            self,
            contact_ids: Iterable[str],
            campaign: dict,
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> Job:
        """
        Personalized campaign emails. `campaign` needs 'subject', 'tone',
        'purpose' and 'call_to_action'.
        """
        return self.submit(TaskType.EMAIL_GENERATION, contact_ids, campaign, mode)

    def analyze_pipeline(
            self,
            deal_ids: Iterable[str],
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> Job:
        return self.submit(TaskType.PIPELINE_ANALYSIS, deal_ids, None, mode)

    def research_social_profiles(
            self,
            contact_ids: Iterable[str],
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> Job:
        return self.submit(TaskType.SOCIAL_RESEARCH, contact_ids, None, mode)

    def estimate(
            self,
            task_type: TaskType | str,
            item_count: int,
            mode: ProcessingMode | str = ProcessingMode.DEFERRED
        ) -> float:
        """Estimated cost of submitting `item_count` entities."""
        task_type = _coerce_enum(TaskType, task_type, "task type")
        mode = _coerce_enum(ProcessingMode, mode, "processing mode")
        return estimate_cost(item_count, mode, task_type, self.settings.pricing)

    def _validate_entity_ids(self, entity_ids) -> List[str]:
        if entity_ids is None or isinstance(entity_ids, (str, bytes)):
            raise ValidationError("entity_ids must be a list of ids")
        entity_ids = [str(i) for i in entity_ids]
        if not entity_ids:
            raise ValidationError("No entity ids provided")
        invalid = [i for i in entity_ids if not i or DELIMITER in i]
        if invalid:
            raise ValidationError(
                f"Entity ids must be non-empty and free of {DELIMITER!r}: {invalid}"
            )
        return entity_ids

    def _get_entity_store(self, task_type: TaskType) -> EntityStore:
        if task_type == TaskType.PIPELINE_ANALYSIS:
            if self.deals is None:
                raise ValidationError("Pipeline analysis requires a deal store")
            return self.deals
        return self.contacts

    #=========================================================================
    # Monitoring
    #=========================================================================

    def _create_monitor(self, job_id: str, mode: ProcessingMode) -> JobMonitor:
        return JobMonitor(
            job_id,
            store=self.store,
            provider=self.provider,
            dispatcher=self.dispatcher,
            initial_delay=self.settings.initial_delays.get(mode, 0),
            poll_interval=self.settings.poll_interval,
            max_polls=self.settings.max_polls,
            max_wait=self.settings.max_wait,
            on_finish=self._mark_done
        )

    def _mark_done(self, job_id: str):
        with self._events_lock:
            event = self._done_events.get(job_id)
        if event is not None:
            event.set()

    def cancel(self, job_id: str, remote: bool = False) -> Job:
        """
        Stop tracking a job and mark it failed.

        Args:
            job_id (str): Job to cancel.
            remote (bool): Also ask the provider to cancel the remote batch.
                Otherwise the remote batch keeps running untracked.

        Returns:
            Job: Snapshot of the job. Terminal jobs are returned unchanged.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal:
            logging.info(f"Job {job_id} is already {job.status.value}; nothing to cancel")
            return job

        self.monitors.stop(job_id)
        batch_id = job.metadata.get('batch_id')
        if remote and batch_id:
            try:
                self.provider.cancel_batch(batch_id)
            except Exception as e:
                logging.warning(f"Could not cancel remote batch {batch_id} of job {job_id}: {e}")

        if self.store.update(job_id, lambda j: fail_unless_terminal(j, "Cancelled by caller")):
            logging.info(f"Job {job_id} cancelled")
        self._mark_done(job_id)
        return self.get_job(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """
        Block until the job's monitor has finished or `timeout` elapses.

        Returns:
            Job: Snapshot of the job, which may still be open on timeout.
        """
        with self._events_lock:
            event = self._done_events.get(job_id)
        if event is None:
            job = self.get_job(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job
        event.wait(timeout)
        return self.get_job(job_id)

    def wait_all(self, timeout: Optional[float] = None, show_progress: bool = True) -> List[Job]:
        """
        Wait for every open job, optionally showing a progress bar.

        Args:
            timeout (float, optional): Overall time limit in seconds.
            show_progress (bool): Display a tqdm progress bar.

        Returns:
            list: Snapshots of all jobs after waiting.
        """
        open_ids = [job.id for job in self.list_jobs() if not job.is_terminal]
        deadline = None if timeout is None else time.monotonic() + timeout
        for job_id in tqdm(open_ids, desc="Waiting for batch jobs", disable=not show_progress):
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            self.wait(job_id, remaining)
        return self.list_jobs()

    def shutdown(self, timeout: Optional[float] = None):
        """Stop every monitor. Open jobs stay in their current state."""
        self.monitors.stop_all(timeout)

    #=========================================================================
    # Queries
    #=========================================================================

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def list_jobs(self) -> List[Job]:
        return sorted(self.store.list(), key=lambda j: j.created_at)

    def list_jobs_by_type(self, task_type: TaskType | str) -> List[Job]:
        task_type = _coerce_enum(TaskType, task_type, "task type")
        return [job for job in self.list_jobs() if job.type == task_type]

    def list_jobs_by_status(self, status: JobStatus | str) -> List[Job]:
        status = _coerce_enum(JobStatus, status, "job status")
        return [job for job in self.list_jobs() if job.status == status]
