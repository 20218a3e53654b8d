# -*- coding: utf-8 -*-

import json
import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

from .errors import ArtifactParseError


@dataclass
class ResultRecord:
    """
    One result line returned by the provider.

    Attributes:
        correlation_id (str | None): The `custom_id` echoed from the request.
        body (str | None): Assistant message content, or None when this
            individual request failed.
        status_code (int | None): HTTP status of the individual request.
        finish_reason (str | None): Finish reason of the first choice.
        error (str | None): Provider error message for failed requests.
    """
    correlation_id: Optional[str]
    body: Optional[str]
    status_code: Optional[int] = None
    finish_reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def parse_result_artifact(artifact: bytes | str) -> List[ResultRecord]:
    """
    Parse a JSONL result artifact into records, keeping provider order.

    Blank lines are ignored. A line that is valid JSON but lacks a usable
    `custom_id` still yields a record (with `correlation_id=None`) so the
    dispatcher can skip it on its own.

    Raises:
        ArtifactParseError: If the artifact is not UTF-8, a line is not valid
            JSON, or a line is not a JSON object.
    """
    if isinstance(artifact, bytes):
        try:
            artifact = artifact.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ArtifactParseError(f"Result artifact is not valid UTF-8: {e}") from e

    records = []
    # JSON strings may hold raw U+2028 or U+0085, so only '\n' ends a record
    for line_no, line in enumerate(artifact.split('\n'), start=1):
        if not line.strip():
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            raise ArtifactParseError(f"Line {line_no} of result artifact is not valid JSON: {e}") from e
        if not isinstance(item, dict):
            raise ArtifactParseError(
                f"Line {line_no} of result artifact is a {type(item).__name__}, expected an object"
            )
        records.append(parse_result_line(item))

    logging.debug(f"Parsed {len(records)} result records")
    return records


def parse_result_line(item: dict) -> ResultRecord:
    """Extract a ResultRecord from one decoded provider result line."""
    custom_id = item.get('custom_id')
    if not isinstance(custom_id, str):
        custom_id = None

    response = item.get('response')
    if not isinstance(response, dict):
        response = {}
    status_code = response.get('status_code')
    body = None
    finish_reason = None
    error = _get_error_message(item.get('error'))

    response_body = response.get('body')
    if not isinstance(response_body, dict):
        response_body = {}
    if status_code == 200:
        try:
            choice = response_body['choices'][0]
            finish_reason = choice.get('finish_reason')
            body = choice['message']['content']
        except (KeyError, IndexError, TypeError):
            error = error or "Response has no message content"
    elif error is None and response:
        error = _get_error_message(response_body.get('error')) or f"HTTP {status_code}"

    return ResultRecord(
        correlation_id=custom_id,
        body=body,
        status_code=status_code,
        finish_reason=finish_reason,
        error=error,
    )


def _get_error_message(error) -> Optional[str]:
    if not error:
        return None
    if isinstance(error, dict):
        return error.get('message') or error.get('code') or json.dumps(error)
    return str(error)
