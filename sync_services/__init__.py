"""
Listing Sync Services

Reconciliation of scraped listing snapshots against the listing store,
and the geocoding backfill for stored listings without coordinates.
"""

from .errors import (
    ListingSyncError,
    SnapshotFormatError,
    SyncValidationError,
    StoreReadError,
    StoreWriteError,
    ProviderError,
)
from .listing_transform import ListingSnapshot, load_snapshot_file
from .listing_store import SupabaseListingStore, ListingRecord, MarketStats
from .reconciliation_service import ReconciliationService, ImportResult, SyncResult, SyncDiff, MarketState
from .geocoding_service import GoogleGeocodingProvider, GeocodeResult
from .geocode_backfill_service import GeocodeBackfillService, BackfillReport
from .sync_log import append_sync_log
from .context import SyncContext, create_context, create_supabase_client

__all__ = [
    # Errors
    'ListingSyncError',
    'SnapshotFormatError',
    'SyncValidationError',
    'StoreReadError',
    'StoreWriteError',
    'ProviderError',

    # Store and snapshots
    'ListingSnapshot',
    'load_snapshot_file',
    'SupabaseListingStore',
    'ListingRecord',
    'MarketStats',

    # Reconciliation
    'ReconciliationService',
    'ImportResult',
    'SyncResult',
    'SyncDiff',
    'MarketState',

    # Geocoding
    'GoogleGeocodingProvider',
    'GeocodeResult',
    'GeocodeBackfillService',
    'BackfillReport',

    # Jobs
    'append_sync_log',
    'SyncContext',
    'create_context',
    'create_supabase_client',
]

__version__ = '1.0.0'
