"""
SmartCRM Batch - Bulk AI processing of CRM entities through OpenAI Batch Jobs

Turns lists of contact or deal ids into tracked, asynchronously completing
batch jobs on the OpenAI Batch API, and routes each result back to the entity
it belongs to once the job completes.

Key Features:
    - Contact enrichment, campaign email generation, pipeline analysis and
      social profile research as batch jobs
    - Immediate and deferred (discounted) processing modes
    - One cancellable monitor thread per job, with optional timeouts
    - Per-record fault isolation when applying results
    - OpenAI and Azure OpenAI Batch API support

Package Structure:
    batching: Job orchestration (encoding, pricing, store, monitor, dispatch)
    handlers: Default result handlers for contacts and deals
    utils:    Shared utilities (clients, entity stores)

Example Usage:

    Basic Workflow:
        import smartcrm_batch as scb

        contacts = scb.utils.entities.TabularEntityStore('./contacts.jsonl')
        client = scb.utils.clients.create_openai_client()

        orchestrator = scb.BatchOrchestrator.from_client(client, contacts=contacts)
        job = orchestrator.enrich_contacts(['c-1', 'c-2', 'c-3'], mode='deferred')
        job = orchestrator.wait(job.id)
        contacts.save()

    CLI Usage:
        $ crmbatch estimate contact_enrichment 250 --mode deferred
        $ crmbatch submit contact_enrichment --entities ./contacts.jsonl --ids c-1 --ids c-2

Environment Setup:
    Required environment variables:
    - OPENAI_API_KEY (for OpenAI API)
    - AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT (for Azure OpenAI)

    These can be set via .env files in:
    - Current working directory (.env, .env.local)
    - Project root directory
"""

__version__ = "0.1.0"

# Load environment on package import
from .core.utils.environment import setup_environment
setup_environment()

# Export core API modules
from . import core
batching = core.batching
handlers = core.handlers
utils = core.utils
BatchOrchestrator = core.BatchOrchestrator

from .core.batching.store import Job, JobStatus, ProcessingMode, TaskType

__all__ = [
    '__version__',
    'batching',           # scb.batching.*
    'handlers',           # scb.handlers.*
    'utils',              # scb.utils.*
    'BatchOrchestrator',  # scb.BatchOrchestrator()
    'Job',
    'JobStatus',
    'ProcessingMode',
    'TaskType',
]

# Clean up namespace
del setup_environment, core
