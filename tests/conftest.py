"""
Shared fixtures: an in-memory listing store and a scripted geocoder.
"""

import copy
import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from sync_config.sync_config import SyncConfig, set_config
from sync_services.errors import StoreReadError, StoreWriteError
from sync_services.geocoding_service import GeocodeResult
from sync_services.listing_store import ListingRecord, MarketStats
from sync_services.listing_transform import ListingSnapshot


class InMemoryListingStore:
    """Listing store double keeping rows in a dict, with failure injection"""

    def __init__(self, data_source: str = 'scraped'):
        self.data_source = data_source
        self.rows: Dict[str, dict] = {}
        self._ids = itertools.count(1)
        self.fail_reads = False
        self.fail_insert_urls = set()
        self.fail_update_ids = set()
        self.fail_deactivate = False
        self.fail_refresh = False
        self.writes = 0

    # Test helpers

    def add(self, url: str, market: str = 'm', is_active: bool = True, **fields) -> str:
        row_id = str(next(self._ids))
        row = {
            'id': row_id,
            'external_url': url,
            'source_market': market,
            'data_source': self.data_source,
            'is_active': is_active,
            'title': f"Listing {url}",
            'address': '1 Test St',
            'city': 'Montgomery',
            'state': 'AL',
            'zip_code': None,
            'price': 1000,
            'latitude': None,
            'longitude': None,
            'last_scraped_at': '2024-01-01T00:00:00',
            'created_at': '2024-01-01T00:00:00',
            'updated_at': '2024-01-01T00:00:00',
        }
        row.update(fields)
        self.rows[row_id] = row
        return row_id

    def snapshot_state(self) -> Dict[str, dict]:
        return copy.deepcopy(self.rows)

    def by_url(self, url: str, market: str = 'm') -> List[dict]:
        return [r for r in self.rows.values() if r['external_url'] == url and r['source_market'] == market]

    def active_urls(self, market: str = 'm') -> set:
        return {
            r['external_url'] for r in self.rows.values()
            if r['source_market'] == market and r['data_source'] == self.data_source and r['is_active']
        }

    def _scraped(self, market: str):
        return [
            r for r in self.rows.values()
            if r['source_market'] == market and r['data_source'] == self.data_source
        ]

    # Store interface

    def find_by_market_and_urls(self, market, urls) -> List[ListingRecord]:
        if self.fail_reads:
            raise StoreReadError("connection refused")
        wanted = set(urls)
        return [ListingRecord.from_row(r) for r in self._scraped(market) if r['external_url'] in wanted]

    def find_market_records(self, market) -> List[ListingRecord]:
        if self.fail_reads:
            raise StoreReadError("connection refused")
        return [ListingRecord.from_row(r) for r in self._scraped(market) if r['external_url']]

    def find_missing_coordinates(self, market: Optional[str] = None) -> List[ListingRecord]:
        if self.fail_reads:
            raise StoreReadError("connection refused")
        return [
            ListingRecord.from_row(r) for r in self.rows.values()
            if r['is_active']
            and (r.get('latitude') is None or r.get('longitude') is None)
            and (market is None or r['source_market'] == market)
        ]

    def market_stats(self, market) -> MarketStats:
        records = self.find_market_records(market)
        return MarketStats(
            source_market=market,
            total=len(records),
            active=len([r for r in records if r.is_active]),
            inactive=len([r for r in records if not r.is_active]),
            missing_coordinates=len([r for r in records if r.is_active and not r.has_coordinates]),
        )

    def insert(self, row) -> str:
        url = row.get('external_url')
        if url in self.fail_insert_urls:
            raise StoreWriteError(f"Insert failed for {url}: duplicate key", [url])
        row_id = str(next(self._ids))
        self.rows[row_id] = dict(row, id=row_id)
        self.writes += 1
        return row_id

    def update(self, record_id, fields) -> None:
        if record_id in self.fail_update_ids:
            raise StoreWriteError(f"Update failed for property {record_id}: timeout")
        self.rows[record_id].update(fields)
        self.writes += 1

    def bulk_deactivate(self, market, urls, now: Optional[datetime] = None) -> int:
        if self.fail_deactivate:
            raise StoreWriteError(f"Deactivation failed for {market}: timeout", list(urls))
        count = 0
        for row in self._scraped(market):
            if row['external_url'] in urls and row['is_active']:
                row['is_active'] = False
                row['updated_at'] = (now or datetime.now(timezone.utc)).isoformat()
                count += 1
        self.writes += 1
        return count

    def refresh_scraped_at(self, market, urls, now: Optional[datetime] = None) -> int:
        if self.fail_refresh:
            raise StoreWriteError(f"Refresh failed for {market}: timeout", list(urls))
        count = 0
        for row in self._scraped(market):
            if row['is_active'] and row['external_url'] in urls:
                row['last_scraped_at'] = (now or datetime.now(timezone.utc)).isoformat()
                count += 1
        self.writes += 1
        return count


class ScriptedGeocoder:
    """Returns canned results per address and records every call"""

    def __init__(self, results: Optional[Dict[str, Optional[GeocodeResult]]] = None, default=None):
        self.results = results or {}
        self.default = default
        self.calls: List[str] = []

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        self.calls.append(address)
        return self.results.get(address, self.default)


def make_snapshot(url: str, **fields) -> ListingSnapshot:
    data = {
        'url': url,
        'title': f"Listing {url}",
        'address': '1 Test St',
        'price': '$1,000',
        'bedrooms': '2',
        'bathrooms': '1.5',
    }
    data.update(fields)
    return ListingSnapshot.from_dict(data)


@pytest.fixture
def config():
    cfg = SyncConfig(
        geocode_delay_seconds=0.0,
        geocode_pause_seconds=0.0,
        geocode_pause_every=10,
        deactivation_alert_threshold=10,
        logs_dir='logs',
    )
    set_config(cfg)
    yield cfg
    set_config(None)


@pytest.fixture
def store():
    return InMemoryListingStore()


@pytest.fixture
def geocoder():
    return ScriptedGeocoder()
