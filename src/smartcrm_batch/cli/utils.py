# -*- coding: utf-8 -*-

import logging
from pathlib import Path

import click

from ..core.batching.files import EMAIL_CAMPAIGN_FIELDS


def setup_logging(verbose=False, quiet=False):
    """Configure logging for CLI execution."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True  # Override any existing configuration
    )

    # Reduce noise from external libraries in non-verbose mode
    if not verbose:
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _validate_positive_integer_callback(ctx, param, value):
    """Validate that the provided value is a positive integer."""
    if value is not None and value <= 0:
        raise click.BadParameter("Value must be a positive integer.")
    return value


def _validate_positive_number_callback(ctx, param, value):
    """Validate that the provided value is a positive number."""
    if value is not None and value <= 0:
        raise click.BadParameter("Value must be positive.")
    return value


#=======================================================================
# Submit Command Utilities
#=======================================================================

def read_ids_file(path):
    """Read one entity id per line, ignoring blank lines and '#' comments."""
    ids = []
    for line in Path(path).read_text(encoding='utf-8').splitlines():
        line = line.strip()
        if line and not line.startswith('#'):
            ids.append(line)
    return ids


def resolve_entity_ids(ids, ids_file, use_all, store):
    """Combine --ids, --ids-file and --all into one ordered id list."""
    sources = sum(bool(s) for s in (ids, ids_file, use_all))
    if sources != 1:
        raise click.UsageError("Specify exactly one of --ids, --ids-file or --all.")
    if use_all:
        return [entity['id'] for entity in store.all()]
    if ids_file:
        return read_ids_file(ids_file)
    return list(ids)


def build_campaign(subject, tone, purpose, call_to_action):
    """Collect the campaign options that were given into task parameters."""
    values = dict(zip(EMAIL_CAMPAIGN_FIELDS, (subject, tone, purpose, call_to_action)))
    return {key: value for key, value in values.items() if value is not None}


def job_summary(job):
    """Printable view of a job, without the raw results."""
    summary = {
        'id': job.id,
        'type': job.type.value,
        'status': job.status.value,
        'processing_mode': job.processing_mode.value,
        'item_count': job.item_count,
        'estimated_cost': round(job.estimated_cost, 6),
        'created_at': job.created_at.isoformat(),
        'completed_at': job.completed_at.isoformat() if job.completed_at else None,
        'batch_id': job.metadata.get('batch_id'),
        'request_count': job.metadata.get('request_count'),
    }
    if job.error:
        summary['error'] = job.error
    if 'dispatch' in job.metadata:
        summary['dispatch'] = job.metadata['dispatch']
    return summary
