# -*- coding: utf-8 -*-
"""
Status monitoring of open batch jobs.

Each open job gets its own daemon thread that polls the provider until the
job reaches a terminal state. Sleeping happens on a stop event, so a monitor
can be cancelled at any point without waiting for its interval to elapse.
"""

import logging
import threading
from typing import Callable, Dict, Optional

from .dispatch import ResultDispatcher
from .errors import JobTimeoutError
from .jobs import BatchProvider, BatchStatus
from .store import Job, JobStatus, JobStore, fail_unless_terminal, utcnow

# Actions decided atomically on each tick
_DONE = 'done'
_DISPATCH = 'dispatch'
_CONTINUE = 'continue'


class JobMonitor(threading.Thread):
    """
    Polling loop for a single job.

    Args:
        job_id (str): Job to monitor. Its metadata must hold 'batch_id'.
        store (JobStore): Store holding the job.
        provider (BatchProvider): Provider to poll.
        dispatcher (ResultDispatcher): Dispatcher run when the batch completes.
        initial_delay (float): Seconds before the first status check.
        poll_interval (float): Seconds between subsequent checks.
        max_polls (int, optional): Polls allowed before the job is failed.
        max_wait (float, optional): Seconds since job creation after which
            the job is failed.
        on_finish (callable, optional): Called with the job id when the loop
            exits, whatever the reason.
    """

    def __init__(
            self,
            job_id: str,
            store: JobStore,
            provider: BatchProvider,
            dispatcher: ResultDispatcher,
            initial_delay: float = 0,
            poll_interval: float = 30,
            max_polls: Optional[int] = None,
            max_wait: Optional[float] = None,
            on_finish: Optional[Callable[[str], None]] = None
        ):
        super().__init__(name=f"monitor-{job_id}", daemon=True)
        self.job_id = job_id
        self.store = store
        self.provider = provider
        self.dispatcher = dispatcher
        self.initial_delay = initial_delay
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.max_wait = max_wait
        self.on_finish = on_finish
        self._stop_event = threading.Event()

    def stop(self):
        """Stop the loop at its next suspension point. The remote batch is untouched."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self):
        logging.debug(f"Monitoring job {self.job_id} (first check in {self.initial_delay}s)")
        try:
            if self._stop_event.wait(self.initial_delay):
                return
            while not self.tick():
                if self._stop_event.wait(self.poll_interval):
                    logging.info(f"Stopped monitoring job {self.job_id}")
                    return
        except Exception:
            logging.exception(f"Monitor for job {self.job_id} crashed")
        finally:
            if self.on_finish is not None:
                self.on_finish(self.job_id)

    def tick(self) -> bool:
        """
        Run one status check.

        Returns:
            bool: True when monitoring is over (job terminal or timed out).
        """
        job = self.store.get(self.job_id)
        if job is None or job.is_terminal:
            return True

        timeout = self._get_timeout_reason(job)
        if timeout is not None:
            logging.error(f"Job {self.job_id} timed out: {timeout}")
            self.store.update(self.job_id, lambda j: fail_unless_terminal(j, str(JobTimeoutError(timeout))))
            return True

        batch_id = job.metadata['batch_id']
        self.store.update(self.job_id, _count_poll)
        try:
            batch_status = self.provider.get_batch_status(batch_id)
        except Exception as e:
            logging.warning(f"Status check for job {self.job_id} (batch {batch_id}) failed, "
                            f"retrying in {self.poll_interval}s: {e}")
            return False

        action = self.store.update(self.job_id, lambda j: _apply_remote_status(j, batch_status))
        if action == _DONE:
            return True
        if action == _CONTINUE:
            return False

        try:
            self.dispatcher.dispatch(self.job_id, batch_status)
        except Exception as e:
            logging.warning(f"Dispatch for job {self.job_id} failed, retrying in {self.poll_interval}s: {e}")
            self.store.update(self.job_id, _release_dispatch)
            return False
        return True

    def _get_timeout_reason(self, job: Job) -> Optional[str]:
        polls = job.metadata.get('poll_count', 0)
        if self.max_polls is not None and polls >= self.max_polls:
            return f"no terminal state after {polls} status checks"
        if self.max_wait is not None:
            elapsed = (utcnow() - job.created_at).total_seconds()
            if elapsed > self.max_wait:
                return f"no terminal state after {elapsed:.0f}s (limit {self.max_wait}s)"
        return None


def _count_poll(job: Job):
    job.metadata['poll_count'] = job.metadata.get('poll_count', 0) + 1


def _apply_remote_status(job: Job, batch_status: BatchStatus) -> str:
    if job.is_terminal:
        return _DONE
    job.metadata['remote_status'] = batch_status.status
    job.metadata['request_counts'] = batch_status.request_counts
    if batch_status.is_completed:
        if job.metadata.get('dispatching'):
            return _DONE
        job.metadata['dispatching'] = True
        job.metadata['output_file_id'] = batch_status.output_file_id
        job.metadata['error_file_id'] = batch_status.error_file_id
        return _DISPATCH
    if batch_status.is_failed:
        job.fail(f"Remote batch {batch_status.batch_id} {batch_status.status}: {batch_status.errors}")
        logging.warning(f"Batch job {job.id} failed remotely ({batch_status.status})")
        return _DONE
    if batch_status.is_running:
        job.advance(JobStatus.PROCESSING)
    return _CONTINUE


def _release_dispatch(job: Job):
    job.metadata['dispatching'] = False


class MonitorPool:
    """
    Keeps at most one live monitor per job.

    Args:
        factory (callable): Builds an unstarted JobMonitor for a job id.
    """

    def __init__(self, factory: Callable[..., JobMonitor]):
        self.factory = factory
        self._monitors: Dict[str, JobMonitor] = {}
        self._lock = threading.Lock()

    def start(self, job_id: str, **kwargs) -> JobMonitor:
        """Start monitoring `job_id`, or return the monitor already running for it."""
        with self._lock:
            monitor = self._monitors.get(job_id)
            if monitor is not None and monitor.is_alive():
                logging.debug(f"Job {job_id} is already being monitored")
                return monitor
            monitor = self.factory(job_id, **kwargs)
            self._monitors[job_id] = monitor
            monitor.start()
            return monitor

    def get(self, job_id: str) -> Optional[JobMonitor]:
        with self._lock:
            return self._monitors.get(job_id)

    def stop(self, job_id: str) -> bool:
        """Stop the monitor of `job_id`. Returns False if none was running."""
        with self._lock:
            monitor = self._monitors.get(job_id)
        if monitor is None or not monitor.is_alive():
            return False
        monitor.stop()
        return True

    def stop_all(self, timeout: Optional[float] = None):
        with self._lock:
            monitors = list(self._monitors.values())
        for monitor in monitors:
            monitor.stop()
        for monitor in monitors:
            if monitor.is_alive() and monitor is not threading.current_thread():
                monitor.join(timeout)

    def active_job_ids(self) -> list:
        with self._lock:
            return [job_id for job_id, m in self._monitors.items() if m.is_alive()]
