# -*- coding: utf-8 -*-

"""
Default routing handlers that write batch results back to CRM entities.

Each handler receives `(entity_id, sub_task, body)` for one result record.
Structured task types expect `body` to be a JSON object; a body that does not
parse raises, and the dispatcher isolates that failure to its record.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .batching.dispatch import ResultHandler
from .batching.store import TaskType
from .utils.entities import EntityStore


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_json_body(body: str) -> dict:
    """
    Parse a JSON object response body.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def build_default_handlers(
        contacts: EntityStore,
        deals: Optional[EntityStore] = None,
        clock: Optional[Callable[[], str]] = None
    ) -> Dict[TaskType, ResultHandler]:
    """
    Build the routing handler for each task type.

    Args:
        contacts (EntityStore): Store updated by enrichment, email and social
            research results.
        deals (EntityStore, optional): Store updated by pipeline analysis
            results. Pipeline results are not routed when omitted.
        clock (callable, optional): Returns the timestamp written alongside
            each update. Defaults to the current UTC time in ISO format.

    Returns:
        dict: TaskType -> handler(entity_id, sub_task, body).
    """
    clock = clock or _utc_timestamp

    def apply_enrichment(contact_id, analysis_type, body):
        contacts.update(contact_id, {
            f'ai_{analysis_type}_analysis': parse_json_body(body),
            'lastEnriched': clock(),
        })

    def apply_generated_email(contact_id, _sub_task, body):
        contacts.update(contact_id, {
            'aiGeneratedEmail': body,
            'lastEmailGenerated': clock(),
        })
        logging.debug(f"Generated email saved for contact {contact_id}")

    def apply_deal_analysis(deal_id, _sub_task, body):
        analysis = parse_json_body(body)
        deals.update(deal_id, {
            'aiAnalysis': analysis,
            'riskScore': analysis.get('riskScore'),
            'nextActions': analysis.get('nextActions'),
            'lastAnalyzed': clock(),
        })

    def apply_social_insights(contact_id, _sub_task, body):
        contacts.update(contact_id, {
            'socialInsights': parse_json_body(body),
            'lastSocialResearch': clock(),
        })

    handlers = {
        TaskType.CONTACT_ENRICHMENT: apply_enrichment,
        TaskType.EMAIL_GENERATION: apply_generated_email,
        TaskType.SOCIAL_RESEARCH: apply_social_insights,
    }
    if deals is not None:
        handlers[TaskType.PIPELINE_ANALYSIS] = apply_deal_analysis
    return handlers
