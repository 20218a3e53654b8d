# -*- coding: utf-8 -*-

"""
Job model, status state machine and the job store.

The store is the only shared mutable state of the engine. Every mutation goes
through `JobStore.update(job_id, mutator)`, which runs the mutator on the
stored job while holding the store lock, so "read status, decide, write
status" is atomic per job.
"""

import copy
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, TypeVar

from .errors import InvalidTransitionError, JobNotFoundError

T = TypeVar('T')


class TaskType(str, Enum):
    """Closed set of task categories a job can belong to."""
    CONTACT_ENRICHMENT = 'contact_enrichment'
    EMAIL_GENERATION = 'email_generation'
    PIPELINE_ANALYSIS = 'pipeline_analysis'
    SOCIAL_RESEARCH = 'social_research'

    @property
    def prefix(self) -> str:
        """Correlation id prefix for requests of this task type."""
        return TASK_PREFIXES[self]


TASK_PREFIXES = {
    TaskType.CONTACT_ENRICHMENT: 'enrich',
    TaskType.EMAIL_GENERATION: 'email',
    TaskType.PIPELINE_ANALYSIS: 'deal',
    TaskType.SOCIAL_RESEARCH: 'social',
}


class ProcessingMode(str, Enum):
    """Service tier: `immediate` (short window, full price) or `deferred`."""
    IMMEDIATE = 'immediate'
    DEFERRED = 'deferred'


class JobStatus(str, Enum):
    QUEUED = 'queued'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_STATUS_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """
    One tracked unit of bulk asynchronous work.

    Attributes:
        id (str): Opaque unique id. Carries the type and mode for log
            readability only; it is never parsed.
        type (TaskType): Task category, fixed at creation.
        status (JobStatus): Current lifecycle state.
        item_count (int): Number of entity ids submitted.
        estimated_cost (float): Cost estimate computed at submission.
        processing_mode (ProcessingMode): Service tier chosen by the caller.
        created_at (datetime): Creation timestamp (UTC).
        completed_at (datetime | None): Set once, on entry to a terminal state.
        results (list | None): Set once, on entry to `completed`.
        metadata (dict): Entity ids, task parameters, remote handles and the
            dispatch summary.
        error (str | None): Failure reason for `failed` jobs.
    """
    id: str
    type: TaskType
    item_count: int
    estimated_cost: float
    processing_mode: ProcessingMode
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    results: Optional[list] = None
    metadata: dict = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def advance(self, status: JobStatus, now: Optional[datetime] = None) -> bool:
        """
        Move the job forward to `status`.

        Re-asserting the current non-terminal status is a no-op and returns
        False. Returns True when the status actually changed.

        Raises:
            InvalidTransitionError: If the job is terminal or `status` ranks
                below the current one.
        """
        status = JobStatus(status)
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Job {self.id} is already {self.status.value}; cannot move to {status.value}"
            )
        if status.rank < self.status.rank:
            raise InvalidTransitionError(
                f"Job {self.id} cannot move back from {self.status.value} to {status.value}"
            )
        if status == self.status:
            return False
        self.status = status
        if status.is_terminal:
            self.completed_at = now or utcnow()
        return True

    def complete(self, results: list, now: Optional[datetime] = None):
        """Enter `completed`, attaching results and completion time once."""
        self.advance(JobStatus.COMPLETED, now=now)
        self.results = results

    def fail(self, error: str, now: Optional[datetime] = None):
        """Enter `failed`, recording the reason."""
        self.advance(JobStatus.FAILED, now=now)
        self.error = error

    def to_dict(self) -> dict:
        data = asdict(self)
        data['type'] = self.type.value
        data['status'] = self.status.value
        data['processing_mode'] = self.processing_mode.value
        data['created_at'] = self.created_at.isoformat()
        data['completed_at'] = self.completed_at.isoformat() if self.completed_at else None
        return data


class JobStore:
    """Narrow interface the orchestrator depends on for job state."""

    def create(self, job: Job) -> None:
        raise NotImplementedError

    def get(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    def update(self, job_id: str, mutator: Callable[[Job], T]) -> T:
        raise NotImplementedError

    def list(self) -> List[Job]:
        raise NotImplementedError


class InMemoryJobStore(JobStore):
    """
    Process-lifetime job store.

    Readers get deep copies so they never observe a job halfway through a
    mutation. Jobs are never removed.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def update(self, job_id: str, mutator: Callable[[Job], T]) -> T:
        """
        Apply `mutator` to the stored job atomically and return its result.

        If the mutator raises, the exception propagates and the stored job
        is left as it was before the call.

        Raises:
            JobNotFoundError: If no job with `job_id` exists.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            draft = copy.deepcopy(job)
            result = mutator(draft)
            self._jobs[job_id] = draft
            return result

    def list(self) -> List[Job]:
        with self._lock:
            return [copy.deepcopy(job) for job in self._jobs.values()]

    def __len__(self):
        with self._lock:
            return len(self._jobs)


def fail_unless_terminal(job: Job, error: str) -> bool:
    """Fail `job` with `error` if it is still open. Returns True if it was failed."""
    if job.is_terminal:
        return False
    job.fail(error)
    return True
