# -*- coding: utf-8 -*-

"""
Correlation ids for requests travelling inside one bulk batch artifact.

Each request line carries a `custom_id` of the form

    {task_prefix}_{entity_id}_{sub_task}_{ordinal}

which the provider echoes back on the matching result line. Decoding it must
recover the entity and sub-task exactly, so any component that would make the
string ambiguous is rejected on both sides instead of guessed at.
"""

from dataclasses import dataclass

from .errors import CorrelationIdError

DELIMITER = '_'


@dataclass(frozen=True)
class CorrelationId:
    """Structured form of a request's `custom_id`."""
    task_prefix: str
    entity_id: str
    sub_task: str
    ordinal: int

    def __post_init__(self):
        for name in ('task_prefix', 'entity_id', 'sub_task'):
            _check_component(name, getattr(self, name))
        if isinstance(self.ordinal, bool) or not isinstance(self.ordinal, int):
            raise CorrelationIdError(f"ordinal must be an int, got {self.ordinal!r}")
        if self.ordinal < 0:
            raise CorrelationIdError(f"ordinal must be non-negative, got {self.ordinal}")

    def __str__(self):
        return DELIMITER.join(
            (self.task_prefix, self.entity_id, self.sub_task, str(self.ordinal))
        )


def _check_component(name, value):
    if not isinstance(value, str) or not value:
        raise CorrelationIdError(f"{name} must be a non-empty string, got {value!r}")
    if DELIMITER in value:
        raise CorrelationIdError(
            f"{name} {value!r} contains the delimiter {DELIMITER!r}; "
            "the correlation id would be ambiguous"
        )


def encode(task_prefix: str, entity_id: str, sub_task: str, ordinal: int) -> str:
    """
    Build the provider-facing correlation id for one (entity, sub-task) request.

    Raises:
        CorrelationIdError: If any component is empty, contains the delimiter,
            or the ordinal is not a non-negative int.
    """
    return str(CorrelationId(task_prefix, entity_id, sub_task, ordinal))


def decode(correlation_id: str) -> CorrelationId:
    """
    Parse a correlation id back into its components.

    Raises:
        CorrelationIdError: If the string does not split into exactly four
            non-empty parts or the ordinal is not a base-10 integer.
    """
    if not isinstance(correlation_id, str):
        raise CorrelationIdError(f"correlation id must be a string, got {type(correlation_id).__name__}")
    parts = correlation_id.split(DELIMITER)
    if len(parts) != 4:
        raise CorrelationIdError(
            f"Expected 4 '{DELIMITER}'-separated parts in {correlation_id!r}, got {len(parts)}"
        )
    task_prefix, entity_id, sub_task, ordinal = parts
    if not ordinal.isdecimal() or not ordinal.isascii():
        raise CorrelationIdError(f"Invalid ordinal {ordinal!r} in {correlation_id!r}")
    return CorrelationId(task_prefix, entity_id, sub_task, int(ordinal))
