"""
Shared fixtures: a scripted in-process batch provider, in-memory entity
stores and settings with no polling delays.
"""

import json
import threading

import pytest

from smartcrm_batch.core.batching.jobs import BatchProvider, BatchStatus
from smartcrm_batch.core.batching.manager import BatchOrchestrator
from smartcrm_batch.core.batching.settings import BatchSettings
from smartcrm_batch.core.batching.store import ProcessingMode
from smartcrm_batch.core.utils.entities import InMemoryEntityStore


def make_result_line(custom_id, content=None, status_code=200, error=None):
    """One line of a provider result file."""
    if status_code == 200:
        body = {
            'id': f'chatcmpl-{custom_id}',
            'choices': [{
                'index': 0,
                'finish_reason': 'stop',
                'message': {'role': 'assistant', 'content': content},
            }],
        }
    else:
        body = {'error': {'message': error or 'request failed'}}
    return {
        'id': f'batch_req_{custom_id}',
        'custom_id': custom_id,
        'response': {'status_code': status_code, 'request_id': 'req', 'body': body},
        'error': None,
    }


def to_artifact(lines, ensure_ascii=True):
    return ''.join(json.dumps(line, ensure_ascii=ensure_ascii) + '\n' for line in lines).encode('utf-8')


def default_responder(request):
    """Answer every request successfully with content suited to its task type."""
    custom_id = request['custom_id']
    if custom_id.startswith('email_'):
        content = f"Subject: Hello\n\nEmail for {custom_id}"
    else:
        content = json.dumps({'score': 80, 'riskScore': 42, 'nextActions': ['call back']})
    return make_result_line(custom_id, content)


class FakeProvider(BatchProvider):
    """
    Scripted provider. Each batch walks through `statuses` one status check
    at a time and stays on the last one. On completion the output file is
    `output_artifact` if set, otherwise `responder` is applied to every
    uploaded request.
    """

    def __init__(self, statuses=('completed',), responder=None):
        self.statuses = list(statuses)
        self.responder = responder or default_responder
        self.output_artifact = None
        self.error_artifact = None
        self.upload_error = None
        self.create_error = None
        self.cancel_error = None
        self.status_errors = 0
        self.download_errors = 0

        self.uploads = {}
        self.batches = {}
        self.files = {}
        self.cancelled = []
        self.status_calls = 0
        self.download_calls = 0
        self._lock = threading.Lock()

    def upload_artifact(self, artifact, filename):
        if self.upload_error is not None:
            raise self.upload_error
        with self._lock:
            file_id = f'file-{len(self.uploads) + 1}'
            self.uploads[file_id] = artifact
        return file_id

    def create_batch(self, file_id, completion_window, metadata=None):
        if self.create_error is not None:
            raise self.create_error
        with self._lock:
            batch_id = f'batch-{len(self.batches) + 1}'
            self.batches[batch_id] = {
                'input_file_id': file_id,
                'completion_window': completion_window,
                'metadata': metadata,
                'polls': 0,
            }
        return batch_id

    def get_batch_status(self, batch_id):
        with self._lock:
            self.status_calls += 1
            if self.status_errors > 0:
                self.status_errors -= 1
                raise ConnectionError("status endpoint unavailable")
            batch = self.batches[batch_id]
            status = self.statuses[min(batch['polls'], len(self.statuses) - 1)]
            batch['polls'] += 1

        if status != 'completed':
            errors = [{'message': 'batch rejected'}] if status == 'failed' else None
            return BatchStatus(batch_id, status, errors=errors)

        output_id = f'{batch_id}-output'
        if self.output_artifact is not None:
            self.files[output_id] = self.output_artifact
        else:
            responses = [self.responder(request) for request in self.requests(batch_id)]
            self.files[output_id] = to_artifact([r for r in responses if r is not None])
        error_id = None
        if self.error_artifact is not None:
            error_id = f'{batch_id}-errors'
            self.files[error_id] = self.error_artifact
        return BatchStatus(batch_id, 'completed', output_id, error_id, {'total': len(self.requests(batch_id))})

    def download_result(self, file_id):
        with self._lock:
            self.download_calls += 1
            if self.download_errors > 0:
                self.download_errors -= 1
                raise ConnectionError("file endpoint unavailable")
        return self.files[file_id]

    def cancel_batch(self, batch_id):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(batch_id)

    def requests(self, batch_id):
        """Decoded request lines uploaded for `batch_id`."""
        artifact = self.uploads[self.batches[batch_id]['input_file_id']]
        return [json.loads(line) for line in artifact.decode('utf-8').splitlines()]


CONTACTS = [
    {'id': 'c1', 'name': 'Ada Lovelace', 'email': 'ada@example.com', 'company': 'Analytical', 'title': 'CTO'},
    {'id': 'c2', 'name': 'Alan Turing', 'email': 'alan@example.com', 'company': 'Bletchley', 'title': 'Researcher'},
    {'id': 'c3', 'name': 'Grace Hopper', 'email': 'grace@example.com', 'company': None, 'title': None},
]

DEALS = [
    {'id': 'd1', 'title': 'Enterprise plan', 'value': 50000, 'stage': 'negotiation',
     'daysInStage': 12, 'contact': {'name': 'Ada Lovelace', 'company': 'Analytical'}},
    {'id': 'd2', 'title': 'Starter plan', 'value': 900, 'stage': 'proposal',
     'contact': {'name': 'Alan Turing', 'company': 'Bletchley'}},
]

CAMPAIGN = {
    'subject': 'Spring launch',
    'tone': 'friendly',
    'purpose': 'announce the new plan',
    'call_to_action': 'book a demo',
}


@pytest.fixture
def contacts():
    return InMemoryEntityStore(CONTACTS)


@pytest.fixture
def deals():
    return InMemoryEntityStore(DEALS)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings():
    return BatchSettings(
        initial_delays={ProcessingMode.IMMEDIATE: 0, ProcessingMode.DEFERRED: 0},
        poll_interval=0.01,
    )


@pytest.fixture
def orchestrator(provider, contacts, deals, settings):
    orchestrator = BatchOrchestrator(provider, contacts, deals=deals, settings=settings)
    yield orchestrator
    orchestrator.shutdown(timeout=2)
