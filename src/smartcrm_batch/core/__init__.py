"""
Core functionality for SmartCRM Batch.

Architecture:
    batching/   - Batch job orchestration
      ├── correlation/ - Correlation id encoding
      ├── files/       - Request envelopes and batch artifact
      ├── pricing/     - Cost estimation
      ├── store/       - Job state machine and job store
      ├── jobs/        - Provider adapter
      ├── monitor/     - Status polling
      ├── parse/       - Result parsing
      ├── dispatch/    - Result routing
      ├── settings/    - Engine settings
      └── manager/     - BatchOrchestrator

    handlers    - Default result handlers writing to CRM entities

    utils/      - Shared utilities and infrastructure
      ├── clients/     - API client creation (OpenAI, Azure)
      ├── entities/    - Entity stores
      ├── misc/        - General utilities (internal)
      └── environment/ - Environment setup (internal)
"""

from . import batching
from . import utils
from . import handlers

from .batching.manager import BatchOrchestrator

__all__ = [
    'batching',           # Batch job orchestration
    'utils',              # Utilities and infrastructure
    'handlers',           # Default result handlers
    'BatchOrchestrator',  # High-level orchestration interface
]
