# -*- coding: utf-8 -*-

from dataclasses import dataclass, field
from typing import Dict, Optional

from .store import ProcessingMode, TaskType


# Immediate-tier price in USD per submitted entity. Enrichment fans out to
# three analyses per contact, hence the higher rate.
DEFAULT_ITEM_RATES = {
    TaskType.CONTACT_ENRICHMENT : 0.003,
    TaskType.EMAIL_GENERATION   : 0.001,
    TaskType.PIPELINE_ANALYSIS  : 0.002,
    TaskType.SOCIAL_RESEARCH    : 0.001,
}
DEFAULT_ITEM_RATE = 0.001
DEFERRED_DISCOUNT = 0.5


@dataclass
class PricingTable:
    """
    Per-item rates for each task type.

    Attributes:
        item_rates (dict): Immediate-tier rate per entity, keyed by TaskType.
        default_rate (float): Rate used when no task type is given.
        deferred_discount (float): Multiplier applied to the immediate rate
            for deferred processing.
    """
    item_rates: Dict[TaskType, float] = field(default_factory=lambda: dict(DEFAULT_ITEM_RATES))
    default_rate: float = DEFAULT_ITEM_RATE
    deferred_discount: float = DEFERRED_DISCOUNT

    def __post_init__(self):
        self.item_rates = {TaskType(k): float(v) for k, v in self.item_rates.items()}
        for task_type, rate in self.item_rates.items():
            if rate < 0:
                raise ValueError(f"Rate for {task_type.value} must be non-negative, got {rate}")
        if self.default_rate < 0:
            raise ValueError(f"default_rate must be non-negative, got {self.default_rate}")
        if not 0 <= self.deferred_discount <= 1:
            raise ValueError(f"deferred_discount must be between 0 and 1, got {self.deferred_discount}")

    @classmethod
    def from_dict(cls, data: dict) -> 'PricingTable':
        """Build a table from a settings mapping, keeping defaults for missing keys."""
        item_rates = dict(DEFAULT_ITEM_RATES)
        item_rates.update({TaskType(k): v for k, v in (data.get('item_rates') or {}).items()})
        return cls(
            item_rates=item_rates,
            default_rate=float(data.get('default_rate', DEFAULT_ITEM_RATE)),
            deferred_discount=float(data.get('deferred_discount', DEFERRED_DISCOUNT)),
        )

    def item_rate(self, mode: ProcessingMode, task_type: Optional[TaskType] = None) -> float:
        """Price of a single item for the given mode and task type."""
        if task_type is None:
            rate = self.default_rate
        else:
            rate = self.item_rates.get(TaskType(task_type), self.default_rate)
        if ProcessingMode(mode) == ProcessingMode.DEFERRED:
            rate *= self.deferred_discount
        return rate


def estimate_cost(
        item_count: int,
        mode: ProcessingMode,
        task_type: Optional[TaskType] = None,
        table: Optional[PricingTable] = None
    ) -> float:
    """
    Estimate the cost of a batch job.

    Args:
        item_count (int): Number of entities in the job.
        mode (ProcessingMode): Processing mode; deferred is discounted.
        task_type (TaskType, optional): Task type whose rate to use.
        table (PricingTable, optional): Rates to use. Defaults to the
            built-in table.

    Returns:
        float: Estimated cost in USD.
    """
    if item_count < 0:
        raise ValueError(f"item_count must be non-negative, got {item_count}")
    table = table or PricingTable()
    return item_count * table.item_rate(mode, task_type)


def describe_pricing(table: Optional[PricingTable] = None) -> list[dict]:
    """
    Tabulate per-item rates for every task type in both modes.

    Returns:
        list: One dict per task type with 'task_type', 'immediate' and
            'deferred' keys.
    """
    table = table or PricingTable()
    return [
        {
            'task_type': task_type.value,
            'immediate': table.item_rate(ProcessingMode.IMMEDIATE, task_type),
            'deferred': table.item_rate(ProcessingMode.DEFERRED, task_type),
        }
        for task_type in TaskType
    ]
