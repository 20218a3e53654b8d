# -*- coding: utf-8 -*-

"""
Routing of completed batch results back to CRM entities.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Mapping, Optional

from .correlation import decode
from .errors import ArtifactParseError, CorrelationIdError
from .jobs import BatchProvider, BatchStatus
from .parse import ResultRecord, parse_result_artifact
from .store import Job, JobStore, TaskType, fail_unless_terminal

# handler(entity_id, sub_task, body)
ResultHandler = Callable[[str, str, str], None]


class ResultDispatcher:
    """
    Downloads a completed batch's results and hands every record to the
    routing handler of the job's task type.

    Args:
        store (JobStore): Job store holding the job being dispatched.
        provider (BatchProvider): Provider to download result files from.
        handlers (dict): Routing handler per TaskType.
    """

    def __init__(
            self,
            store: JobStore,
            provider: BatchProvider,
            handlers: Optional[Mapping[TaskType, ResultHandler]] = None
        ):
        self.store = store
        self.provider = provider
        self.handlers: Dict[TaskType, ResultHandler] = {
            TaskType(k): v for k, v in (handlers or {}).items()
        }

    def register_handler(self, task_type: TaskType, handler: ResultHandler):
        self.handlers[TaskType(task_type)] = handler

    def download_records(self, batch_status: BatchStatus) -> List[ResultRecord]:
        """
        Fetch and parse the output file, followed by the error file if any.

        Raises:
            ArtifactParseError: If either file is malformed.
        """
        records = []
        if batch_status.output_file_id:
            records.extend(parse_result_artifact(
                self.provider.download_result(batch_status.output_file_id)
            ))
        else:
            logging.warning(f"Batch {batch_status.batch_id} completed without an output file")
        if batch_status.error_file_id:
            error_records = parse_result_artifact(
                self.provider.download_result(batch_status.error_file_id)
            )
            for record in error_records:
                record.body = None
            records.extend(error_records)
        return records

    def dispatch(self, job_id: str, batch_status: BatchStatus) -> Job:
        """
        Apply the results of a completed batch and conclude the job.

        An unreadable artifact fails the job. Undecodable correlation ids,
        failed items and handler exceptions only affect their own record.
        Provider errors while downloading propagate so the caller can retry.

        Returns:
            Job: Snapshot of the job after dispatch.
        """
        job = self.store.get(job_id)
        try:
            records = self.download_records(batch_status)
        except ArtifactParseError as e:
            logging.error(f"Result artifact for job {job_id} is malformed: {e}")
            self.store.update(job_id, lambda j: fail_unless_terminal(j, f"Malformed result artifact: {e}"))
            return self.store.get(job_id)

        summary = self.apply_records(job, records)
        results = [record.to_dict() for record in records]

        def conclude(j: Job):
            if j.is_terminal:
                logging.warning(f"Job {j.id} became {j.status.value} during dispatch; results not attached")
                return False
            j.complete(results)
            j.metadata['dispatch'] = summary
            return True

        if self.store.update(job_id, conclude):
            logging.info(
                f"Batch job {job_id} completed: {summary['applied']} applied, "
                f"{summary['skipped']} skipped, {summary['failed']} failed "
                f"out of {len(records)} results"
            )
        return self.store.get(job_id)

    def apply_records(self, job: Job, records: List[ResultRecord]) -> dict:
        """
        Route each record, in order, to the job type's handler.

        Returns:
            dict: Counts of applied, skipped (undecodable or foreign) and
                failed (item error, missing handler or handler exception)
                records, plus per sub-task counts.
        """
        summary = {'applied': 0, 'skipped': 0, 'failed': 0}
        by_sub_task = defaultdict(lambda: {'applied': 0, 'failed': 0})
        handler = self.handlers.get(job.type)
        if handler is None and records:
            logging.error(f"No result handler registered for {job.type.value}; "
                          f"{len(records)} results of job {job.id} were not applied")

        for record in records:
            try:
                cid = decode(record.correlation_id)
            except CorrelationIdError as e:
                logging.warning(f"Skipping result with undecodable id in job {job.id}: {e}")
                summary['skipped'] += 1
                continue
            if cid.task_prefix != job.type.prefix:
                logging.warning(f"Skipping result {record.correlation_id} in job {job.id}: "
                                f"prefix does not match {job.type.value}")
                summary['skipped'] += 1
                continue

            if record.body is None:
                logging.warning(f"Request {record.correlation_id} failed: {record.error}")
                summary['failed'] += 1
                by_sub_task[cid.sub_task]['failed'] += 1
                continue
            if handler is None:
                summary['failed'] += 1
                by_sub_task[cid.sub_task]['failed'] += 1
                continue

            try:
                handler(cid.entity_id, cid.sub_task, record.body)
            except Exception:
                logging.exception(f"Handler for {job.type.value} failed on {record.correlation_id}")
                summary['failed'] += 1
                by_sub_task[cid.sub_task]['failed'] += 1
                continue
            summary['applied'] += 1
            by_sub_task[cid.sub_task]['applied'] += 1

        summary['by_sub_task'] = dict(by_sub_task)
        return summary
