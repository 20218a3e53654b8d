# -*- coding: utf-8 -*-

"""
Exception hierarchy for batch job orchestration.

Errors local to a single result record (CorrelationIdError, handler
exceptions) are absorbed and logged by the dispatcher. Errors that prevent a
job from being established or concluded (ValidationError, SubmissionError,
ArtifactParseError, JobTimeoutError) either reach the caller of `submit()` or
move the job to `failed`.
"""


class BatchEngineError(Exception):
    """Base class for every error raised by the batch engine."""


class ValidationError(BatchEngineError, ValueError):
    """Submission rejected before any job was created."""


class SubmissionError(BatchEngineError):
    """Uploading the artifact or opening the remote batch failed."""

    def __init__(self, message, job_id=None):
        super().__init__(message)
        self.job_id = job_id


class CorrelationIdError(BatchEngineError, ValueError):
    """A correlation id could not be encoded or decoded unambiguously."""


class ArtifactParseError(BatchEngineError):
    """The downloaded result artifact is unreadable as a whole."""


class InvalidTransitionError(BatchEngineError):
    """A job status change would move backwards or leave a terminal state."""


class JobNotFoundError(BatchEngineError, KeyError):
    """No job with the given id is registered."""


class JobTimeoutError(BatchEngineError):
    """A job exceeded its polling budget before reaching a terminal state."""
