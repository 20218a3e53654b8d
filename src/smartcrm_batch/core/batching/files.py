# -*- coding: utf-8 -*-

"""
Request envelopes and the JSONL batch artifact.

Each task type turns one entity into one or more chat-completion requests
(one per sub-task), tags every request with a correlation id and packs them
into a single JSON Lines artifact for upload.
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .correlation import encode
from .errors import CorrelationIdError, ValidationError
from .store import TaskType

ENRICHMENT_ANALYSES = ('scoring', 'social', 'personality')
EMAIL_CAMPAIGN_FIELDS = ('subject', 'tone', 'purpose', 'call_to_action')

# Fixed sub-task tag for task types that send a single request per entity
SINGLE_SUB_TASKS = {
    TaskType.EMAIL_GENERATION: 'email',
    TaskType.PIPELINE_ANALYSIS: 'analysis',
    TaskType.SOCIAL_RESEARCH: 'insights',
}

DEFAULT_MODELS = {
    TaskType.CONTACT_ENRICHMENT : {'model': 'gpt-4o-mini', 'max_tokens': 1000},
    TaskType.EMAIL_GENERATION   : {'model': 'gpt-4o-mini', 'max_tokens': 800 },
    TaskType.PIPELINE_ANALYSIS  : {'model': 'gpt-4o',      'max_tokens': 1200},
    TaskType.SOCIAL_RESEARCH    : {'model': 'gpt-4o-mini', 'max_tokens': 1000},
}

# Task types whose responses are stored as structured JSON
JSON_TASK_TYPES = {
    TaskType.CONTACT_ENRICHMENT,
    TaskType.PIPELINE_ANALYSIS,
    TaskType.SOCIAL_RESEARCH,
}

SYSTEM_MESSAGES = {
    TaskType.CONTACT_ENRICHMENT: (
        'You are a professional contact enrichment AI that provides detailed '
        'analysis and insights.'
    ),
    TaskType.EMAIL_GENERATION: (
        'You are an expert email marketing copywriter who creates personalized, '
        'engaging emails that drive conversions.'
    ),
    TaskType.PIPELINE_ANALYSIS: (
        'You are a sales analytics expert who provides deep insights into deal '
        'progression, risk factors, and optimization opportunities.'
    ),
    TaskType.SOCIAL_RESEARCH: (
        'You are a social media research specialist who analyzes professional '
        'profiles to provide actionable insights for sales and networking.'
    ),
}

MAX_REQUESTS_PER_BATCH = 50_000
MAX_ARTIFACT_BYTES = 190 * 1024**2   # 200MB provider limit minus a 10MB margin


@dataclass(frozen=True)
class RequestEnvelope:
    """One request line of the batch artifact."""
    correlation_id: str
    payload: dict
    url: str = '/v1/chat/completions'

    def to_line(self) -> dict:
        return {
            'custom_id': self.correlation_id,
            'method': 'POST',
            'url': self.url,
            'body': self.payload,
        }


#=============================================================================
# Parameter validation
#=============================================================================

def validate_params(task_type: TaskType, params: Optional[dict]) -> dict:
    """
    Check and normalize the task parameters for `task_type`.

    Returns:
        dict: Normalized parameters, stored in the job metadata.

    Raises:
        ValidationError: If parameters are missing, unknown or malformed.
    """
    task_type = TaskType(task_type)
    params = dict(params or {})

    if task_type == TaskType.CONTACT_ENRICHMENT:
        _reject_unknown_keys(task_type, params, {'analysis_types'})
        analysis_types = params.get('analysis_types')
        if analysis_types is None:
            analysis_types = list(ENRICHMENT_ANALYSES)
        if not isinstance(analysis_types, (list, tuple)) or not analysis_types:
            raise ValidationError("analysis_types must be a non-empty list")
        unknown = [a for a in analysis_types if a not in ENRICHMENT_ANALYSES]
        if unknown:
            raise ValidationError(
                f"Unknown analysis types {unknown}. Supported: {', '.join(ENRICHMENT_ANALYSES)}"
            )
        if len(set(analysis_types)) != len(analysis_types):
            raise ValidationError(f"Duplicate analysis types in {list(analysis_types)}")
        return {'analysis_types': list(analysis_types)}

    if task_type == TaskType.EMAIL_GENERATION:
        _reject_unknown_keys(task_type, params, set(EMAIL_CAMPAIGN_FIELDS))
        missing = [
            key for key in EMAIL_CAMPAIGN_FIELDS
            if not isinstance(params.get(key), str) or not params[key].strip()
        ]
        if missing:
            raise ValidationError(f"Campaign is missing required fields: {', '.join(missing)}")
        return {key: params[key].strip() for key in EMAIL_CAMPAIGN_FIELDS}

    _reject_unknown_keys(task_type, params, set())
    return {}


def _reject_unknown_keys(task_type, params, allowed):
    unknown = sorted(set(params) - allowed)
    if unknown:
        raise ValidationError(f"Unexpected parameters for {task_type.value}: {unknown}")


def get_sub_tasks(task_type: TaskType, params: dict) -> List[str]:
    """Sub-task tags requested per entity for `task_type`."""
    task_type = TaskType(task_type)
    if task_type == TaskType.CONTACT_ENRICHMENT:
        return list(params['analysis_types'])
    return [SINGLE_SUB_TASKS[task_type]]


#=============================================================================
# Prompts
#=============================================================================

def build_enrichment_prompt(contact: dict, analysis_type: str) -> str:
    base_info = (
        f"Contact: {contact.get('name')} ({contact.get('email')}) "
        f"at {contact.get('company') or 'Unknown Company'}"
    )
    if analysis_type == 'scoring':
        task = ('Analyze this contact for lead scoring. Consider: company size, role seniority, '
                'engagement potential, budget authority. Provide a score 1-100 and detailed reasoning.')
    elif analysis_type == 'social':
        task = ('Research likely social media presence and professional background. '
                'Provide insights for personalized outreach.')
    elif analysis_type == 'personality':
        task = ('Analyze communication style preferences, decision-making approach, and optimal '
                'engagement strategies based on available information.')
    else:
        task = 'Provide comprehensive contact analysis and enrichment insights.'
    return f"{base_info}\n\n{task}\n\nRespond with a JSON object."


def build_email_prompt(contact: dict, campaign: dict) -> str:
    return (
        "Create a personalized email for:\n"
        f"Contact: {contact.get('name')} ({contact.get('title') or 'Professional'}) "
        f"at {contact.get('company') or 'their company'}\n\n"
        "Campaign Details:\n"
        f"- Subject Theme: {campaign['subject']}\n"
        f"- Tone: {campaign['tone']}\n"
        f"- Purpose: {campaign['purpose']}\n"
        f"- Call to Action: {campaign['call_to_action']}\n\n"
        "Generate a complete email with personalized subject line and body that "
        "resonates with this specific contact."
    )


def build_deal_analysis_prompt(deal: dict) -> str:
    contact = deal.get('contact') or {}
    return (
        "Analyze this sales deal:\n"
        f"Deal: {deal.get('title')} - ${deal.get('value')}\n"
        f"Stage: {deal.get('stage')}\n"
        f"Contact: {contact.get('name')}\n"
        f"Company: {contact.get('company')}\n"
        f"Days in Stage: {deal.get('daysInStage') or 'Unknown'}\n\n"
        "Provide: risk assessment, next best actions, probability of close, timeline "
        "predictions, and optimization recommendations. Respond with a JSON object "
        "including the keys 'riskScore' and 'nextActions'."
    )


def build_social_research_prompt(contact: dict) -> str:
    return (
        "Research social and professional insights for:\n"
        f"{contact.get('name')} - {contact.get('title') or 'Professional'} "
        f"at {contact.get('company') or 'Unknown Company'}\n"
        f"Email: {contact.get('email')}\n\n"
        "Provide: likely social media platforms, professional interests, content engagement "
        "patterns, optimal outreach timing, and personalization opportunities. "
        "Respond with a JSON object."
    )


def build_prompt(task_type: TaskType, entity: dict, sub_task: str, params: dict) -> str:
    if task_type == TaskType.CONTACT_ENRICHMENT:
        return build_enrichment_prompt(entity, sub_task)
    if task_type == TaskType.EMAIL_GENERATION:
        return build_email_prompt(entity, params)
    if task_type == TaskType.PIPELINE_ANALYSIS:
        return build_deal_analysis_prompt(entity)
    return build_social_research_prompt(entity)


#=============================================================================
# Envelopes and artifact
#=============================================================================

def build_request_envelopes(
        task_type: TaskType,
        indexed_entities: Iterable[Tuple[int, dict]],
        params: dict,
        models: Optional[dict] = None,
        url: str = '/v1/chat/completions'
    ) -> List[RequestEnvelope]:
    """
    Build one envelope per (entity, sub-task) pair.

    Args:
        task_type (TaskType): Task type of the job.
        indexed_entities: Pairs of (position in the submitted id list, entity
            dict with an 'id' key). The position becomes the correlation
            ordinal, so repeated entities never collide.
        params (dict): Validated task parameters.
        models (dict, optional): Model configuration per task type.
        url (str): Provider endpoint each request targets.

    Raises:
        ValidationError: If an entity id cannot be encoded unambiguously.
    """
    task_type = TaskType(task_type)
    model_config = (models or DEFAULT_MODELS)[task_type]
    sub_tasks = get_sub_tasks(task_type, params)

    envelopes = []
    for ordinal, entity in indexed_entities:
        for sub_task in sub_tasks:
            try:
                correlation_id = encode(task_type.prefix, str(entity['id']), sub_task, ordinal)
            except CorrelationIdError as e:
                raise ValidationError(str(e)) from e

            body = {
                'model': model_config['model'],
                'messages': [
                    {'role': 'system', 'content': SYSTEM_MESSAGES[task_type]},
                    {'role': 'user', 'content': build_prompt(task_type, entity, sub_task, params)},
                ],
                'max_tokens': model_config['max_tokens'],
            }
            if task_type in JSON_TASK_TYPES:
                body['response_format'] = {'type': 'json_object'}
            envelopes.append(RequestEnvelope(correlation_id, body, url))

    logging.debug(f"Built {len(envelopes)} {task_type.value} requests ({len(sub_tasks)} per entity)")
    return envelopes


def serialize_envelopes(envelopes: List[RequestEnvelope]) -> bytes:
    """
    Pack envelopes into one JSONL artifact.

    Raises:
        ValidationError: If the artifact is empty or exceeds the provider's
            per-batch request or size limits.
    """
    if not envelopes:
        raise ValidationError("No requests to submit")
    if len(envelopes) > MAX_REQUESTS_PER_BATCH:
        raise ValidationError(
            f"{len(envelopes)} requests exceed the per-batch limit of {MAX_REQUESTS_PER_BATCH}"
        )
    artifact = ''.join(json.dumps(e.to_line()) + '\n' for e in envelopes).encode('utf-8')
    if len(artifact) > MAX_ARTIFACT_BYTES:
        raise ValidationError(
            f"Batch artifact of {len(artifact)} bytes exceeds the limit of {MAX_ARTIFACT_BYTES}"
        )
    return artifact
