"""
Command-line interface for SmartCRM Batch.

Commands:
    pricing:  Show per-item rates for every task type and mode
    estimate: Estimate the cost of a submission
    submit:   Submit entities from a JSONL, CSV or Parquet file as a batch
              job, wait for it and write the results back to the file
    check:    Show the remote status of a batch
    cancel:   Cancel a remote batch

Environment Requirements:
    - OPENAI_API_KEY (for OpenAI API)
    - AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT (for Azure OpenAI)

Example Workflow:
    # 1. Check what a deferred enrichment of 250 contacts costs
    $ crmbatch estimate contact_enrichment 250 --mode deferred

    # 2. Submit it and wait for the results
    $ crmbatch submit contact_enrichment
       --entities ./contacts.jsonl
       --ids-file ./to_enrich.txt
       --analysis-type scoring --analysis-type social
       --timeout 86400

    # 3. Campaign emails for every contact in a CSV file
    $ crmbatch submit email_generation --entities ./contacts.csv --all
       --campaign-subject "Spring launch" --campaign-tone friendly
       --campaign-purpose "announce the new plan" --campaign-cta "book a demo"
"""

from .cli import cli

__all__ = [
    'cli',  # Main CLI interface (Click command group)
]
