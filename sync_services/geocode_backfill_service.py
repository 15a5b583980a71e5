"""
Geocode Backfill Service

Fills in latitude/longitude for active listings stored without
coordinates. Provider calls are issued one at a time with a fixed delay
after each call and a longer pause every N records.

Each record ends the run geocoded, failed or skipped. Failed and skipped
records keep their null coordinates, so the next scheduled run picks them
up again.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sync_config.sync_config import SyncConfig, get_config
from .errors import StoreReadError, StoreWriteError
from .listing_store import ListingRecord

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    """Result of a geocoding backfill run"""
    success: int = 0
    failure: int = 0
    skipped: int = 0
    total: int = 0
    completed: bool = True
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'completed': self.completed,
            'summary': {
                'success': self.success,
                'failure': self.failure,
                'skipped': self.skipped,
                'total': self.total,
                'errors': list(self.errors),
            },
        }


class GeocodeBackfillService:
    """
    Worker that geocodes stored listings missing coordinates.

    Only a failure to read the listing store is fatal; geocoding and
    per-record write failures are counted and the run continues.
    """

    def __init__(self, store, geocoder, config: Optional[SyncConfig] = None):
        self.store = store
        self.geocoder = geocoder
        self.config = config or get_config()

    async def backfill_missing_coordinates(self, market: Optional[str] = None) -> BackfillReport:
        """
        Geocode every active record lacking latitude or longitude.

        Args:
            market: Optional source market to scope the run

        Returns:
            BackfillReport with success/failure/skipped/total counts
        """
        start_time = time.time()
        report = BackfillReport()
        scope = market or 'all markets'

        try:
            records = self.store.find_missing_coordinates(market)
        except StoreReadError as e:
            logger.error(f"Geocoding backfill failed for {scope}: {e}")
            report.completed = False
            report.errors.append(str(e))
            return report

        report.total = len(records)
        if not records:
            logger.info(f"All active properties in {scope} already have coordinates")
            return report

        logger.info(f"Found {len(records)} properties needing geocoding in {scope}")

        for i, record in enumerate(records):
            progress = f"[{i + 1}/{len(records)}]"

            if not record.has_complete_address:
                logger.info(f"{progress} Skipping {record.id} - incomplete address")
                report.skipped += 1
            else:
                if await self._geocode_record(record, progress, report):
                    report.success += 1
                else:
                    report.failure += 1

                # Rate limiting between provider calls
                await asyncio.sleep(self.config.geocode_delay_seconds)

            if (i + 1) % self.config.geocode_pause_every == 0 and i < len(records) - 1:
                logger.debug("Pausing for rate limit safety...")
                await asyncio.sleep(self.config.geocode_pause_seconds)

        report.duration_seconds = time.time() - start_time

        logger.info(f"Geocoding backfill for {scope} completed: {report.success} geocoded, "
                    f"{report.failure} failed, {report.skipped} skipped, {report.total} total")

        return report

    async def _geocode_record(self, record: ListingRecord, progress: str, report: BackfillReport) -> bool:
        address = record.geocode_address()
        try:
            result = self.geocoder.geocode(address)
        except Exception as e:
            logger.error(f"{progress} Geocoding error for {address}: {e}")
            report.errors.append(f"Geocoding error for property {record.id}: {e}")
            return False

        if result is None:
            logger.warning(f"{progress} Geocoding failed - no results for {address}")
            report.errors.append(f"No geocoding result for property {record.id}: {address}")
            return False

        try:
            self.store.update(record.id, {
                'latitude': result.lat,
                'longitude': result.lng,
                'updated_at': datetime.now(timezone.utc).isoformat(),
            })
        except StoreWriteError as e:
            logger.error(f"{progress} Database update failed: {e}")
            report.errors.append(str(e))
            return False

        logger.info(f"{progress} Geocoded {record.id}: {result.lat}, {result.lng}")
        return True
