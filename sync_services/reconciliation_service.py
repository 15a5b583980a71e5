"""
Reconciliation Service for Scraped Listing Data

This service reconciles scraper snapshots of a market against the listing
store, producing the minimal set of inserts, updates and deactivations.

Two entry points mirror the two ways a market is fed:
- import_market: first-time or best-effort bulk ingestion. Pure upsert,
  never deactivates anything because the snapshot may be incomplete.
- incremental_sync: applies a precomputed diff (current URLs, records for
  new URLs, URLs that vanished). The diff is validated against the stored
  state first and rejected as a whole when it is inconsistent.

sync_market computes that diff from the store itself and is the preferred
entry point for scheduled jobs.

Sync phases always run in the order deactivate -> insert -> refresh.
Write failures inside a phase are collected per record and never abort
the remaining work; every phase is idempotent, so a rerun with the same
input is harmless.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from sync_config.listing_url import normalize_url
from sync_config.sync_config import SyncConfig, get_config
from .errors import StoreReadError, StoreWriteError, SyncValidationError
from .listing_store import ListingRecord
from .listing_transform import ListingSnapshot, to_insert_row, to_update_fields

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Result of a bulk market import"""
    source_market: str
    success: bool = False
    total_processed: int = 0
    new_properties: int = 0
    updated_properties: int = 0
    reactivated_properties: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'sourceMarket': self.source_market,
            'summary': {
                'totalProcessed': self.total_processed,
                'newProperties': self.new_properties,
                'updatedProperties': self.updated_properties,
                'deactivatedProperties': 0,
                'reactivatedProperties': self.reactivated_properties,
                'skipped': self.skipped,
                'errors': list(self.errors),
            },
        }


@dataclass
class SyncResult:
    """Result of an incremental market sync"""
    source_market: str
    success: bool = False
    new_properties: int = 0
    updated_properties: int = 0
    deactivated_properties: int = 0
    reactivated_properties: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    deactivation_alert: bool = False
    analysis: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'sourceMarket': self.source_market,
            'deactivationAlert': self.deactivation_alert,
            'summary': {
                'newProperties': self.new_properties,
                'updatedProperties': self.updated_properties,
                'deactivatedProperties': self.deactivated_properties,
                'reactivatedProperties': self.reactivated_properties,
                'skipped': self.skipped,
                'errors': list(self.errors),
            },
            'analysis': dict(self.analysis),
        }


@dataclass
class MarketState:
    """Stored scraped records of one market, split by lifecycle"""
    source_market: str
    active: Dict[str, ListingRecord] = field(default_factory=dict)
    inactive: Dict[str, ListingRecord] = field(default_factory=dict)

    @classmethod
    def from_records(cls, market: str, records: Iterable[ListingRecord]) -> 'MarketState':
        state = cls(source_market=market)
        for record in records:
            if not record.external_url:
                continue
            if record.is_active:
                state.active[record.external_url] = record
            else:
                state.inactive.setdefault(record.external_url, record)
        # An active record always wins over an inactive duplicate
        for url in list(state.inactive):
            if url in state.active:
                del state.inactive[url]
        return state


@dataclass
class SyncDiff:
    """Set difference between the stored market state and a snapshot"""
    source_market: str
    current_urls: List[str] = field(default_factory=list)
    new_records: List[ListingSnapshot] = field(default_factory=list)
    removed_urls: List[str] = field(default_factory=list)
    unchanged_urls: List[str] = field(default_factory=list)
    relisted_urls: List[str] = field(default_factory=list)


def _unique(urls: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(url for url in urls if url))


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ReconciliationService:
    """
    Service that reconciles scraper snapshots against the listing store
    """

    def __init__(self, store, config: Optional[SyncConfig] = None, geocoder=None):
        self.store = store
        self.config = config or get_config()
        self.geocoder = geocoder

    # Bulk import

    async def import_market(self, source_market: str, snapshots: List[ListingSnapshot]) -> ImportResult:
        """
        Upsert a (possibly incomplete) snapshot of a market.

        New URLs are inserted as active scraped records. Known URLs get their
        descriptive fields and last_scraped_at refreshed; inactive ones are
        reactivated since reappearing means the listing is live again.

        Args:
            source_market: Market key, e.g. montgomery-al
            snapshots: Scraped listings

        Returns:
            ImportResult with counts and per-record errors
        """
        start_time = time.time()
        result = ImportResult(source_market=source_market)

        unique_snapshots = self._collapse_duplicates(snapshots)
        result.skipped = len(snapshots) - len(unique_snapshots)

        logger.info(f"Processing {len(unique_snapshots)} properties from {source_market}")

        try:
            existing = self.store.find_by_market_and_urls(
                source_market, [s.url for s in unique_snapshots]
            )
        except StoreReadError as e:
            result.error_message = f"Import failed: {e}"
            result.errors.append(result.error_message)
            logger.error(result.error_message)
            return result

        state = MarketState.from_records(source_market, existing)
        now = datetime.now(timezone.utc)

        for snapshot in unique_snapshots:
            result.total_processed += 1
            record = state.active.get(snapshot.url) or state.inactive.get(snapshot.url)

            try:
                if record:
                    fields = to_update_fields(snapshot, source_market, self.config, now)
                    if not record.is_active:
                        fields['is_active'] = True
                    self.store.update(record.id, fields)
                    result.updated_properties += 1
                    if not record.is_active:
                        result.reactivated_properties += 1
                        logger.info(f"Reactivated relisted property {snapshot.url}")
                else:
                    row = to_insert_row(snapshot, source_market, self.config, now)
                    await self._geocode_row(row)
                    self.store.insert(row)
                    result.new_properties += 1

            except StoreWriteError as e:
                result.errors.append(str(e))
            except Exception as e:
                result.errors.append(f"Property processing failed for {snapshot.url}: {e}")

        result.success = True
        result.duration_seconds = time.time() - start_time

        logger.info(f"Import completed for {source_market}: {result.new_properties} new, "
                    f"{result.updated_properties} updated, {result.reactivated_properties} reactivated, "
                    f"{len(result.errors)} errors")

        return result

    # Incremental sync

    async def incremental_sync(
        self,
        current_urls: List[str],
        new_records: List[ListingSnapshot],
        removed_urls: List[str],
        source_market: str
    ) -> SyncResult:
        """
        Apply a precomputed diff for a market.

        Args:
            current_urls: Every URL observed in the latest scrape of the market
            new_records: Full records for URLs not active in the store
            removed_urls: Active URLs absent from current_urls

        Returns:
            SyncResult; success is False only when the stored state could not
            be read or the diff failed validation, in which case nothing
            was written
        """
        start_time = time.time()

        try:
            state = self._load_market_state(source_market)
        except StoreReadError as e:
            return self._failed_result(source_market, f"Incremental sync failed: {e}", start_time)

        return await self._apply_diff(state, current_urls, new_records, removed_urls, start_time)

    async def sync_market(self, source_market: str, snapshots: List[ListingSnapshot]) -> SyncResult:
        """
        Reconcile a complete snapshot of a market, computing the diff from the store.

        Args:
            source_market: Market key
            snapshots: Every listing observed in the latest scrape

        Returns:
            SyncResult of the applied diff
        """
        start_time = time.time()

        try:
            state = self._load_market_state(source_market)
        except StoreReadError as e:
            return self._failed_result(source_market, f"Sync failed: {e}", start_time)

        diff = self.diff_against_state(state, snapshots)
        return await self._apply_diff(
            state, diff.current_urls, diff.new_records, diff.removed_urls, start_time
        )

    async def compute_diff(self, source_market: str, snapshots: List[ListingSnapshot]) -> SyncDiff:
        """
        Diff a snapshot against the stored market state without writing anything.

        Raises:
            StoreReadError: When the stored state cannot be fetched
        """
        state = self._load_market_state(source_market)
        return self.diff_against_state(state, snapshots)

    def diff_against_state(self, state: MarketState, snapshots: List[ListingSnapshot]) -> SyncDiff:
        unique_snapshots = self._collapse_duplicates(snapshots)
        current_urls = [s.url for s in unique_snapshots]
        current = set(current_urls)

        diff = SyncDiff(source_market=state.source_market, current_urls=current_urls)
        diff.removed_urls = [url for url in state.active if url not in current]
        diff.new_records = [s for s in unique_snapshots if s.url not in state.active]
        diff.unchanged_urls = [url for url in current_urls if url in state.active]
        diff.relisted_urls = [s.url for s in diff.new_records if s.url in state.inactive]

        logger.info(f"Change analysis for {state.source_market}: "
                    f"{len(diff.new_records)} new ({len(diff.relisted_urls)} relisted), "
                    f"{len(diff.removed_urls)} removed, {len(diff.unchanged_urls)} unchanged")
        return diff

    def validate_diff(
        self,
        state: MarketState,
        current_urls: List[str],
        new_records: List[ListingSnapshot],
        removed_urls: List[str]
    ) -> None:
        """
        Check a caller-supplied diff against the stored state.

        With E the active URLs of the market and C the current URLs, the diff
        must satisfy removed == E - C and {new record urls} == C - E.

        Raises:
            SyncValidationError: Listing every inconsistency found
        """
        problems: List[str] = []
        market = state.source_market

        if not market:
            problems.append("source market is required")

        active: Set[str] = set(state.active)
        current: Set[str] = set(current_urls)
        removed: Set[str] = set(removed_urls)

        for url in _unique(removed_urls):
            if url not in active:
                problems.append(f"removed url is not active in {market}: {url}")
            elif url in current:
                problems.append(f"removed url is still in current urls: {url}")

        for url in sorted(active - current - removed):
            problems.append(f"active url missing from current urls but not listed as removed: {url}")

        seen: Set[str] = set()
        for record in new_records:
            if record.url in seen:
                problems.append(f"duplicate new record: {record.url}")
                continue
            seen.add(record.url)
            if record.url in active:
                problems.append(f"new record already exists in {market}: {record.url}")
            elif record.url not in current:
                problems.append(f"new record url is not in current urls: {record.url}")

        for url in _unique(current_urls):
            if url not in active and url not in seen:
                problems.append(f"current url has no record to insert: {url}")

        if problems:
            raise SyncValidationError(market, problems)

    async def _apply_diff(
        self,
        state: MarketState,
        current_urls: List[str],
        new_records: List[ListingSnapshot],
        removed_urls: List[str],
        start_time: float
    ) -> SyncResult:
        market = state.source_market
        result = SyncResult(source_market=market)
        current_urls = _unique(current_urls)
        removed_urls = _unique(removed_urls)

        result.analysis = {
            'existingActive': len(state.active),
            'existingInactive': len(state.inactive),
            'currentUrls': len(current_urls),
            'newUrls': len(new_records),
            'removedUrls': len(removed_urls),
        }

        logger.info(f"Incremental sync for {market}: {len(current_urls)} current, "
                    f"{len(new_records)} new, {len(removed_urls)} removed")

        try:
            self.validate_diff(state, current_urls, new_records, removed_urls)
        except SyncValidationError as e:
            logger.error(str(e))
            result.validation_errors = list(e.problems)
            result.errors = list(e.problems)
            result.error_message = str(e)
            result.duration_seconds = time.time() - start_time
            return result

        now = datetime.now(timezone.utc)

        # Phase 1: deactivate vanished listings
        result.deactivated_properties = self._deactivate(market, removed_urls, now, result)

        # Phase 2: insert new listings, reactivating relisted ones
        inserted_urls = await self._insert(state, new_records, now, result)

        # Phase 3: refresh confirmed-live listings
        refresh_urls = [url for url in current_urls if url in state.active and url not in inserted_urls]
        result.updated_properties = self._refresh(market, refresh_urls, now, result)

        result.deactivation_alert = self.config.is_deactivation_spike(result.deactivated_properties)
        if result.deactivation_alert:
            logger.warning(f"ALERT: {result.deactivated_properties} properties deactivated in {market} "
                           f"(threshold {self.config.deactivation_alert_threshold}) - "
                           f"this may indicate a scraping issue")

        result.success = True
        result.duration_seconds = time.time() - start_time

        logger.info(f"Incremental sync completed for {market}: {result.new_properties} new, "
                    f"{result.reactivated_properties} reactivated, "
                    f"{result.deactivated_properties} deactivated, "
                    f"{result.updated_properties} refreshed, {len(result.errors)} errors")

        return result

    def _deactivate(self, market: str, removed_urls: List[str], now: datetime, result: SyncResult) -> int:
        deactivated = 0
        for batch in _chunks(removed_urls, self.config.write_batch_size):
            try:
                deactivated += self.store.bulk_deactivate(market, batch, now)
            except StoreWriteError as e:
                logger.error(str(e))
                result.errors.append(str(e))
        return deactivated

    async def _insert(
        self,
        state: MarketState,
        new_records: List[ListingSnapshot],
        now: datetime,
        result: SyncResult
    ) -> Set[str]:
        market = state.source_market
        written: Set[str] = set()

        for snapshot in new_records:
            relisted = state.inactive.get(snapshot.url)
            try:
                if relisted:
                    fields = to_update_fields(snapshot, market, self.config, now)
                    fields['is_active'] = True
                    self.store.update(relisted.id, fields)
                    result.reactivated_properties += 1
                else:
                    row = to_insert_row(snapshot, market, self.config, now)
                    await self._geocode_row(row)
                    self.store.insert(row)
                    result.new_properties += 1
                written.add(snapshot.url)

            except StoreWriteError as e:
                result.errors.append(str(e))
            except Exception as e:
                result.errors.append(f"New property processing failed for {snapshot.url}: {e}")

        return written

    def _refresh(self, market: str, urls: List[str], now: datetime, result: SyncResult) -> int:
        refreshed = 0
        for batch in _chunks(urls, self.config.write_batch_size):
            try:
                refreshed += self.store.refresh_scraped_at(market, batch, now)
            except StoreWriteError as e:
                logger.error(str(e))
                result.errors.append(str(e))
        return refreshed

    # Helpers

    def _load_market_state(self, source_market: str) -> MarketState:
        records = self.store.find_market_records(source_market)
        state = MarketState.from_records(source_market, records)
        logger.info(f"Found {len(state.active) + len(state.inactive)} existing properties in {source_market} "
                    f"({len(state.active)} active, {len(state.inactive)} inactive)")
        return state

    def _failed_result(self, source_market: str, message: str, start_time: float) -> SyncResult:
        logger.error(message)
        return SyncResult(
            source_market=source_market,
            success=False,
            errors=[message],
            error_message=message,
            duration_seconds=time.time() - start_time
        )

    def _collapse_duplicates(self, snapshots: List[ListingSnapshot]) -> List[ListingSnapshot]:
        """Keep the last occurrence of each listing URL"""
        by_key: Dict[str, ListingSnapshot] = {}
        for snapshot in snapshots:
            key = normalize_url(snapshot.url)
            if key in by_key:
                logger.warning(f"Duplicate listing in snapshot, keeping last: {snapshot.url}")
                del by_key[key]
            by_key[key] = snapshot
        return list(by_key.values())

    async def _geocode_row(self, row: Dict[str, Any]) -> None:
        """Inline geocoding of a new row, when enabled"""
        if not (self.geocoder and self.config.geocode_on_import):
            return
        if not (row.get('address') and row.get('city') and row.get('state')):
            return

        address = f"{row['address']}, {row['city']}, {row['state']} {row.get('zip_code') or ''}".strip()
        try:
            geocoded = self.geocoder.geocode(address)
        except Exception as e:
            logger.warning(f"Geocoding error for {row['address']}: {e}")
            geocoded = None

        if geocoded:
            row['latitude'] = geocoded.lat
            row['longitude'] = geocoded.lng
        else:
            logger.warning(f"Geocoding failed for: {row['address']}")

        await asyncio.sleep(self.config.geocode_delay_seconds)
