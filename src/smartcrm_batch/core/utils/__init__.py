"""
Shared utilities for SmartCRM Batch.

Submodules:
    clients:     API client creation (OpenAI, Azure OpenAI)
    entities:    Contact and deal entity stores
    environment: Environment configuration (internal)
    misc:        JSON Lines, YAML and path helpers (internal)
"""

from . import clients
from . import entities

__all__ = [
    'clients',    # scb.utils.clients.*
    'entities',   # scb.utils.entities.*
]
