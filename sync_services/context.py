"""
Service context for the sync jobs.

One SyncContext is built per process and handed to whatever runs a job,
instead of each service reaching for module-level clients.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

from sync_config.sync_config import SyncConfig, get_config
from .geocode_backfill_service import GeocodeBackfillService
from .geocoding_service import GoogleGeocodingProvider
from .listing_store import SupabaseListingStore
from .reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    """Process-wide services for the sync jobs"""
    config: SyncConfig
    store: SupabaseListingStore
    geocoder: GoogleGeocodingProvider
    reconciliation: ReconciliationService
    backfill: GeocodeBackfillService


def create_supabase_client() -> Client:
    """
    Create a Supabase client from the environment.

    Raises:
        RuntimeError: When SUPABASE_URL or the service key is missing
    """
    url = os.getenv('SUPABASE_URL')
    # Support both SUPABASE_SERVICE_ROLE_KEY and SUPABASE_KEY for compatibility
    key = os.getenv('SUPABASE_SERVICE_ROLE_KEY') or os.getenv('SUPABASE_KEY')

    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables required")

    return create_client(url, key)


def create_context(
    supabase_client: Client,
    config: Optional[SyncConfig] = None,
    api_key: Optional[str] = None
) -> SyncContext:
    """
    Create all required service instances.

    Args:
        supabase_client: Supabase client instance
        config: Sync configuration (defaults to the global configuration)
        api_key: Google Maps API key override
    """
    config = config or get_config()

    store = SupabaseListingStore(supabase_client, config)
    geocoder = GoogleGeocodingProvider(api_key, config)

    return SyncContext(
        config=config,
        store=store,
        geocoder=geocoder,
        reconciliation=ReconciliationService(store, config, geocoder),
        backfill=GeocodeBackfillService(store, geocoder, config),
    )
