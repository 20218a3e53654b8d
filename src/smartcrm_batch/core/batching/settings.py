# -*- coding: utf-8 -*-

"""
Engine settings: pricing, completion windows, polling cadence, timeouts and
per-task model configuration.

Settings are resolved in three layers: built-in defaults, a YAML file, and a
handful of environment variables for the polling knobs.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import platformdirs

from .files import DEFAULT_MODELS
from .pricing import PricingTable
from .store import ProcessingMode, TaskType
from ..utils.misc import mask_path, read_yaml

SETTINGS_ENV_VAR = 'SMARTCRM_BATCH_SETTINGS'
POLL_INTERVAL_ENV_VAR = 'SMARTCRM_BATCH_POLL_INTERVAL'
MAX_POLLS_ENV_VAR = 'SMARTCRM_BATCH_MAX_POLLS'
MAX_WAIT_ENV_VAR = 'SMARTCRM_BATCH_MAX_WAIT'

DEFAULT_COMPLETION_WINDOWS = {
    ProcessingMode.IMMEDIATE: '24h',
    ProcessingMode.DEFERRED: '24h',
}
DEFAULT_INITIAL_DELAYS = {
    ProcessingMode.IMMEDIATE: 10.0,
    ProcessingMode.DEFERRED: 60.0,
}
DEFAULT_POLL_INTERVAL = 30.0


@dataclass
class BatchSettings:
    """
    Attributes:
        pricing (PricingTable): Per-item rates and deferred discount.
        completion_windows (dict): Provider completion window per mode.
        initial_delays (dict): Seconds before the first status check per mode.
        poll_interval (float): Seconds between status checks.
        max_polls (int | None): Status checks allowed before a job is failed.
        max_wait (float | None): Seconds since creation after which an open
            job is failed.
        endpoint (str): Provider endpoint targeted by every request.
        models (dict): Model name and max tokens per task type.
    """
    pricing: PricingTable = field(default_factory=PricingTable)
    completion_windows: Dict[ProcessingMode, str] = field(
        default_factory=lambda: dict(DEFAULT_COMPLETION_WINDOWS))
    initial_delays: Dict[ProcessingMode, float] = field(
        default_factory=lambda: dict(DEFAULT_INITIAL_DELAYS))
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_polls: Optional[int] = None
    max_wait: Optional[float] = None
    endpoint: str = '/v1/chat/completions'
    models: Dict[TaskType, dict] = field(default_factory=lambda: copy.deepcopy(DEFAULT_MODELS))

    def __post_init__(self):
        if self.poll_interval < 0:
            raise ValueError(f"poll_interval must be non-negative, got {self.poll_interval}")
        if self.max_polls is not None and self.max_polls < 1:
            raise ValueError(f"max_polls must be a positive integer, got {self.max_polls}")
        if self.max_wait is not None and self.max_wait <= 0:
            raise ValueError(f"max_wait must be positive, got {self.max_wait}")
        for mode in ProcessingMode:
            if mode not in self.completion_windows:
                raise ValueError(f"Missing completion window for {mode.value} mode")
            if self.initial_delays.get(mode, 0) < 0:
                raise ValueError(f"Initial delay for {mode.value} mode must be non-negative")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'BatchSettings':
        """
        Build settings from a (YAML-style) mapping, keeping defaults for
        missing keys.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        data = dict(data or {})
        known = {
            'pricing', 'completion_windows', 'initial_delays', 'poll_interval',
            'max_polls', 'max_wait', 'endpoint', 'models'
        }
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings keys: {unknown}")

        settings = cls()
        if 'pricing' in data:
            settings.pricing = PricingTable.from_dict(data['pricing'] or {})
        if 'completion_windows' in data:
            settings.completion_windows.update(
                {ProcessingMode(k): str(v) for k, v in data['completion_windows'].items()})
        if 'initial_delays' in data:
            settings.initial_delays.update(
                {ProcessingMode(k): float(v) for k, v in data['initial_delays'].items()})
        if 'poll_interval' in data:
            settings.poll_interval = float(data['poll_interval'])
        if data.get('max_polls') is not None:
            settings.max_polls = int(data['max_polls'])
        if data.get('max_wait') is not None:
            settings.max_wait = float(data['max_wait'])
        if 'endpoint' in data:
            settings.endpoint = str(data['endpoint'])
        for task_type, config in (data.get('models') or {}).items():
            settings.models[TaskType(task_type)].update(config)

        settings.__post_init__()
        return settings


def get_default_settings_path() -> Path:
    """Platform-specific location of the user settings file."""
    config_dir = platformdirs.user_config_dir("smartcrm-batch", "smartcrm")
    return Path(config_dir) / "settings.yaml"


def load_settings(path: Optional[str | Path] = None) -> BatchSettings:
    """
    Resolve settings from defaults, a YAML file and environment variables.

    The YAML file is `path` if given, otherwise `$SMARTCRM_BATCH_SETTINGS`,
    otherwise the platform settings file when it exists.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        ValueError: If the file or environment hold invalid values.
    """
    explicit = path or os.getenv(SETTINGS_ENV_VAR)
    if explicit:
        settings_path = Path(explicit)
        if not settings_path.exists():
            raise FileNotFoundError(f"Settings file not found: {settings_path}")
    else:
        settings_path = get_default_settings_path()

    data = {}
    if settings_path.exists():
        data = read_yaml(settings_path) or {}
        logging.debug(f"Loaded settings from {mask_path(settings_path)}")

    env_overrides = {
        'poll_interval': os.getenv(POLL_INTERVAL_ENV_VAR),
        'max_polls': os.getenv(MAX_POLLS_ENV_VAR),
        'max_wait': os.getenv(MAX_WAIT_ENV_VAR),
    }
    for key, value in env_overrides.items():
        if value:
            data[key] = value

    return BatchSettings.from_dict(data)
