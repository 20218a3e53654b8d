"""
Batch job orchestration for SmartCRM Batch.

Submodules:
    correlation: Correlation id encoding and decoding
    files:       Request envelopes and the JSONL batch artifact
    pricing:     Cost estimation
    store:       Job model, status state machine and job store
    jobs:        Bulk-inference provider adapter
    monitor:     Per-job status polling threads
    parse:       Result artifact parsing
    dispatch:    Result routing to entity handlers
    settings:    Engine settings
    manager:     BatchOrchestrator, the public entry point

Example Usage:
    import smartcrm_batch as scb

    orchestrator = scb.BatchOrchestrator.from_client(client, contacts=contacts)
    job = orchestrator.enrich_contacts(['c-1', 'c-2'], mode='deferred')
    scb.batching.pricing.estimate_cost(2, 'deferred', 'contact_enrichment')
"""

# Import submodules (not individual functions)
from . import errors
from . import correlation
from . import store
from . import pricing
from . import files
from . import jobs
from . import parse
from . import dispatch
from . import monitor
from . import settings
from . import manager

__all__ = [
    'errors',       # scb.batching.errors.*
    'correlation',  # scb.batching.correlation.*
    'store',        # scb.batching.store.*
    'pricing',      # scb.batching.pricing.*
    'files',        # scb.batching.files.*
    'jobs',         # scb.batching.jobs.*
    'parse',        # scb.batching.parse.*
    'dispatch',     # scb.batching.dispatch.*
    'monitor',      # scb.batching.monitor.*
    'settings',     # scb.batching.settings.*
    'manager',      # scb.batching.manager.*
]
