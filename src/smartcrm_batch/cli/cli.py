# -*- coding: utf-8 -*-

import json
import logging

import click

from ..core.batching.errors import BatchEngineError
from ..core.batching.files import ENRICHMENT_ANALYSES
from ..core.batching.jobs import OpenAIBatchProvider
from ..core.batching.manager import BatchOrchestrator
from ..core.batching.pricing import describe_pricing, estimate_cost
from ..core.batching.settings import load_settings
from ..core.batching.store import ProcessingMode, TaskType
from ..core.utils.clients import create_client
from ..core.utils.entities import TabularEntityStore
from ..core.utils.environment import validate_required_env_vars
from ..core.utils.misc import mask_path
from .utils import (
    setup_logging,
    _validate_positive_integer_callback,
    _validate_positive_number_callback,
    resolve_entity_ids,
    build_campaign,
    job_summary,
)

TASK_TYPES = [t.value for t in TaskType]
MODES = [m.value for m in ProcessingMode]


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


def _get_client(azure):
    """Create the API client, exiting with a helpful message when credentials are missing."""
    missing_vars = validate_required_env_vars(azure=azure)
    if missing_vars:
        logging.error(f"Missing required environment variables: {missing_vars}")
        logging.info("Please set these environment variables or create a "
                     ".env file at the repo root directory with:")
        for var in missing_vars:
            logging.info(f"  {var}=your_key_here")
        raise SystemExit(1)
    try:
        return create_client(azure=azure)
    except ValueError as e:
        logging.error(f"Error creating client: {e}")
        raise SystemExit(1)


@click.group()
@click.option(
    '-v', '--verbose', is_flag=True,
    help='Enable verbose (DEBUG) logging'
)
@click.option(
    '-q', '--quiet', is_flag=True,
    help='Only show warnings and errors'
)
@click.option(
    '--settings', 'settings_path', type=click.Path(exists=True, dir_okay=False), default=None,
    help=('YAML settings file with pricing, completion windows, polling and '
          'model configuration. Defaults to $SMARTCRM_BATCH_SETTINGS or the '
          'user settings file.')
)
@click.pass_context
def cli(ctx, verbose, quiet, settings_path):
    """
    SmartCRM Batch CLI - Bulk AI processing of CRM contacts and deals through
    OpenAI Batch Jobs.

    \b
    Ensure you have the appropriate API keys set in your environment variables:
    - OPENAI_API_KEY (for OpenAI)
    - AZURE_OPENAI_API_KEY, AZURE_OPENAI_ENDPOINT (for Azure OpenAI)
    """
    setup_logging(verbose=verbose, quiet=quiet)

    ctx.ensure_object(dict)
    try:
        ctx.obj['settings'] = load_settings(settings_path)
    except (ValueError, FileNotFoundError) as e:
        logging.error(f"Invalid settings: {e}")
        raise SystemExit(1)


@cli.command()
@click.pass_context
def pricing(ctx):
    """Show per-item rates for every task type and processing mode."""
    table = ctx.obj['settings'].pricing
    click.echo(f"{'Task type':<22}{'Immediate':>12}{'Deferred':>12}")
    for row in describe_pricing(table):
        click.echo(f"{row['task_type']:<22}{row['immediate']:>12.5f}{row['deferred']:>12.5f}")


@cli.command()
@click.argument('task_type', type=click.Choice(TASK_TYPES))
@click.argument('item_count', type=int)
@click.option(
    '--mode', type=click.Choice(MODES), default='deferred', show_default=True,
    help='Processing mode.'
)
@click.pass_context
def estimate(ctx, task_type, item_count, mode):
    """Estimate the cost of submitting ITEM_COUNT entities."""
    if item_count < 0:
        raise click.BadParameter("ITEM_COUNT must be non-negative.")
    cost = estimate_cost(item_count, ProcessingMode(mode), TaskType(task_type), ctx.obj['settings'].pricing)
    click.echo(f"Estimated cost for {item_count} {task_type} items ({mode}): ${cost:,.4f}")


@cli.command()
@click.argument('task_type', type=click.Choice(TASK_TYPES))
@click.option(
    '--entities', 'entities_file', type=click.Path(exists=True, dir_okay=False), required=True,
    help=('Entity file (JSONL, CSV or Parquet) with an "id" column. Contacts for '
          'contact-based tasks, deals for pipeline_analysis.')
)
@click.option('--ids', multiple=True, help='Entity id to submit. Repeat for several ids.')
@click.option(
    '--ids-file', type=click.Path(exists=True, dir_okay=False), default=None,
    help='File with one entity id per line.'
)
@click.option('--all', 'use_all', is_flag=True, help='Submit every entity in the entity file.')
@click.option(
    '--mode', type=click.Choice(MODES), default='deferred', show_default=True,
    help='Processing mode. Deferred is cheaper but slower.'
)
@click.option(
    '--analysis-type', 'analysis_types', multiple=True, type=click.Choice(ENRICHMENT_ANALYSES),
    help='Enrichment analysis to request (contact_enrichment only). Defaults to all.'
)
@click.option('--campaign-subject', default=None, help='Campaign subject theme (email_generation).')
@click.option('--campaign-tone', default=None, help='Campaign tone (email_generation).')
@click.option('--campaign-purpose', default=None, help='Campaign purpose (email_generation).')
@click.option('--campaign-cta', default=None, help='Campaign call to action (email_generation).')
@click.option('--azure/--no-azure', default=False, help='Use Azure OpenAI instead of OpenAI.')
@click.option(
    '--wait/--no-wait', default=True, show_default=True,
    help='Wait for the job to finish and write results back to the entity file.'
)
@click.option(
    '--timeout', type=float, default=None, callback=_validate_positive_number_callback,
    help='Maximum seconds to wait for the job.'
)
@click.option(
    '--max-polls', type=int, default=None, callback=_validate_positive_integer_callback,
    help='Fail the job after this many status checks.'
)
@click.option(
    '--output', type=click.Path(dir_okay=False), default=None,
    help='Where to write the updated entities. Defaults to the entity file itself.'
)
@click.pass_context
def submit(
        ctx, task_type, entities_file, ids, ids_file, use_all, mode, analysis_types,
        campaign_subject, campaign_tone, campaign_purpose, campaign_cta,
        azure, wait, timeout, max_polls, output
    ):
    """Submit a batch job for entities of ENTITIES file."""
    task_type = TaskType(task_type)
    settings = ctx.obj['settings']
    if max_polls is not None:
        settings.max_polls = max_polls

    store = TabularEntityStore(entities_file)
    entity_ids = resolve_entity_ids(ids, ids_file, use_all, store)

    if task_type == TaskType.CONTACT_ENRICHMENT:
        params = {'analysis_types': list(analysis_types)} if analysis_types else {}
    elif task_type == TaskType.EMAIL_GENERATION:
        params = build_campaign(campaign_subject, campaign_tone, campaign_purpose, campaign_cta)
    else:
        params = {}

    client = _get_client(azure)
    provider = OpenAIBatchProvider(client, endpoint=settings.endpoint)
    if task_type == TaskType.PIPELINE_ANALYSIS:
        orchestrator = BatchOrchestrator(provider, contacts=store, deals=store, settings=settings)
    else:
        orchestrator = BatchOrchestrator(provider, contacts=store, settings=settings)

    try:
        job = orchestrator.submit(task_type, entity_ids, params, mode)
    except BatchEngineError as e:
        logging.error(f"Submission failed: {e}")
        raise SystemExit(1)

    if not wait:
        logging.warning("Not waiting: results of this job will not be applied by this process. "
                        f"Track the remote batch with 'crmbatch check {job.metadata.get('batch_id')}'.")
        _echo_json(job_summary(job))
        orchestrator.shutdown()
        return

    job = orchestrator.wait(job.id, timeout=timeout)
    orchestrator.shutdown()
    _echo_json(job_summary(job))

    if job.status.value == 'completed':
        saved = store.save(output)
        logging.info(f"Entities updated in {mask_path(saved)}")
    elif not job.is_terminal:
        logging.warning(f"Job {job.id} still {job.status.value} after waiting; results were not applied.")
        raise SystemExit(2)
    else:
        raise SystemExit(1)


@cli.command()
@click.argument('batch_id')
@click.option('--azure/--no-azure', default=False, help='Use Azure OpenAI instead of OpenAI.')
@click.pass_context
def check(ctx, batch_id, azure):
    """Check the remote status of BATCH_ID."""
    provider = OpenAIBatchProvider(_get_client(azure), endpoint=ctx.obj['settings'].endpoint)
    status = provider.get_batch_status(batch_id)
    _echo_json({
        'batch_id': status.batch_id,
        'status': status.status,
        'output_file_id': status.output_file_id,
        'error_file_id': status.error_file_id,
        'request_counts': status.request_counts,
        'errors': status.errors,
    })


@cli.command()
@click.argument('batch_id')
@click.option('--azure/--no-azure', default=False, help='Use Azure OpenAI instead of OpenAI.')
@click.option('--force', is_flag=True, default=False, help='Skip the confirmation prompt.')
@click.pass_context
def cancel(ctx, batch_id, azure, force):
    """Cancel the remote batch BATCH_ID."""
    if not force:
        click.confirm(f"Cancel remote batch {batch_id}?", abort=True)
    provider = OpenAIBatchProvider(_get_client(azure), endpoint=ctx.obj['settings'].endpoint)
    provider.cancel_batch(batch_id)
    click.echo(f"Batch {batch_id} cancelled.")
