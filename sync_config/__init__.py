"""
Configuration module for the listing sync jobs.
"""

from .sync_config import (
    SyncConfig,
    get_config,
    reload_config,
    set_config,
)
from .listing_url import normalize_url, generate_external_id

__all__ = [
    'SyncConfig',
    'get_config',
    'reload_config',
    'set_config',
    'normalize_url',
    'generate_external_id',
]
