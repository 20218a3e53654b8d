# -*- coding: utf-8 -*-
"""
This module wraps the bulk-inference provider behind a small interface used
by the orchestrator: uploading an artifact, opening a batch, checking its
status, downloading result files and cancelling.
It includes retry logic for transient OpenAI errors.
"""


import logging
from dataclasses import dataclass, field
from typing import Optional

import openai
from tenacity import (retry, retry_if_exception_type, stop_after_attempt,
                      wait_exponential)


retry_on_transient_openai_errors = retry(
    retry=retry_if_exception_type((
        openai.RateLimitError,
        openai.InternalServerError,
        openai.APIConnectionError,
        openai.APITimeoutError,
        openai.UnprocessableEntityError
    )),
    wait=wait_exponential(min=2, max=256),
    stop=stop_after_attempt(10),
    reraise=True
)

# Remote batch states, as reported by the OpenAI Batch API
REMOTE_COMPLETED = 'completed'
REMOTE_FAILED_STATES = frozenset({'failed', 'expired', 'cancelled'})
REMOTE_RUNNING_STATES = frozenset({'in_progress', 'finalizing', 'cancelling'})


@dataclass
class BatchStatus:
    """Snapshot of a remote batch."""
    batch_id: str
    status: str
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    request_counts: dict = field(default_factory=dict)
    errors: Optional[list] = None

    @property
    def is_completed(self) -> bool:
        return self.status == REMOTE_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status in REMOTE_FAILED_STATES

    @property
    def is_running(self) -> bool:
        return self.status in REMOTE_RUNNING_STATES


class BatchProvider:
    """Operations the engine needs from a bulk-inference provider."""

    def upload_artifact(self, artifact: bytes, filename: str) -> str:
        raise NotImplementedError

    def create_batch(self, file_id: str, completion_window: str, metadata: Optional[dict] = None) -> str:
        raise NotImplementedError

    def get_batch_status(self, batch_id: str) -> BatchStatus:
        raise NotImplementedError

    def download_result(self, file_id: str) -> bytes:
        raise NotImplementedError

    def cancel_batch(self, batch_id: str) -> None:
        raise NotImplementedError


class OpenAIBatchProvider(BatchProvider):
    """
    Batch provider backed by the OpenAI (or Azure OpenAI) Batch API.

    Args:
        client: OpenAI API client.
        endpoint (str): Endpoint every request in the artifact targets.
    """

    # Batch API accepts only a 24h completion window
    supported_completion_windows = ('24h',)

    def __init__(
            self,
            client: openai.OpenAI | openai.AzureOpenAI,
            endpoint: str = '/v1/chat/completions'
        ):
        self.client = client
        self.endpoint = endpoint

    @retry_on_transient_openai_errors
    def upload_artifact(self, artifact: bytes, filename: str) -> str:
        if not artifact:
            raise ValueError("Batch artifact is empty")
        logging.info(f"Uploading batch artifact {filename} ({len(artifact)} bytes)...")
        batch_file = self.client.files.create(
            file=(filename, artifact),
            purpose='batch'
        )
        logging.debug(f"Uploaded {filename} as file {batch_file.id}")
        return batch_file.id

    @retry_on_transient_openai_errors
    def create_batch(self, file_id: str, completion_window: str, metadata: Optional[dict] = None) -> str:
        batch_job = self.client.batches.create(
            input_file_id=file_id,
            endpoint=self.endpoint,
            completion_window=completion_window,
            metadata=metadata
        )
        logging.info(f"Batch job created with ID: {batch_job.id} (window {completion_window})")
        return batch_job.id

    @retry_on_transient_openai_errors
    def get_batch_status(self, batch_id: str) -> BatchStatus:
        batch_job = self.client.batches.retrieve(batch_id)
        status = batch_job.status
        request_counts = batch_job.request_counts.model_dump() if batch_job.request_counts else {}
        errors = batch_job.errors.model_dump().get('data') if batch_job.errors else None

        if status == "failed":
            logging.error(f"Batch {batch_id} failed with error: {errors}")
        elif status == "in_progress" and request_counts.get('total'):
            completed = request_counts.get('completed', 0)
            percentage = completed / request_counts['total'] * 100
            logging.info(f"Batch {batch_id} is in progress, {completed} requests completed ({percentage:.2f}%)")
        elif status == "finalizing":
            logging.info(f"Batch {batch_id} is finalizing, waiting for the output file ID")
        elif status == "completed":
            logging.info(f"Batch {batch_id} has completed with output file ID: {batch_job.output_file_id}")
        else:
            logging.info(f"Batch {batch_id} is in status: {status}")

        return BatchStatus(
            batch_id=batch_id,
            status=status,
            output_file_id=batch_job.output_file_id,
            error_file_id=batch_job.error_file_id,
            request_counts=request_counts,
            errors=errors,
        )

    @retry_on_transient_openai_errors
    def download_result(self, file_id: str) -> bytes:
        logging.info(f"Downloading batch result file {file_id}...")
        return self.client.files.content(file_id).content

    @retry_on_transient_openai_errors
    def cancel_batch(self, batch_id: str) -> None:
        logging.info(f"Cancelling batch job {batch_id}...")
        self.client.batches.cancel(batch_id)
        logging.info(f"Batch job {batch_id} cancelled.")
