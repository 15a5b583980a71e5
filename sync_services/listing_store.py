"""
Listing Store

Supabase-backed access to the properties table for the sync jobs. Every
query is scoped to one source market and the scraped data source, and
URL lists are chunked to keep `in` filters under PostgREST URL limits.

Read failures raise StoreReadError and abort the calling job before it
mutates anything. Write failures raise StoreWriteError so callers can
record them per record and carry on.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from supabase import Client

from sync_config.sync_config import SyncConfig, get_config
from .errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)

RECORD_COLUMNS = (
    'id, title, address, city, state, zip_code, price, bedrooms, bathrooms, sqft, '
    'description, scraped_contact_name, scraped_contact_phone, latitude, longitude, '
    'is_active, data_source, source_market, external_url, last_scraped_at, '
    'created_at, updated_at'
)

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000


@dataclass
class ListingRecord:
    """A persisted listing row"""
    id: str
    external_url: Optional[str]
    source_market: Optional[str]
    data_source: Optional[str] = None
    is_active: bool = True
    title: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: Optional[str] = None
    price: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    sqft: Optional[int] = None
    description: Optional[str] = None
    scraped_contact_name: Optional[str] = None
    scraped_contact_phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_scraped_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ListingRecord':
        return cls(
            id=str(row['id']),
            external_url=row.get('external_url'),
            source_market=row.get('source_market'),
            data_source=row.get('data_source'),
            is_active=bool(row.get('is_active', True)),
            title=row.get('title') or '',
            address=row.get('address') or '',
            city=row.get('city') or '',
            state=row.get('state') or '',
            zip_code=row.get('zip_code'),
            price=row.get('price'),
            bedrooms=row.get('bedrooms'),
            bathrooms=row.get('bathrooms'),
            sqft=row.get('sqft'),
            description=row.get('description'),
            scraped_contact_name=row.get('scraped_contact_name'),
            scraped_contact_phone=row.get('scraped_contact_phone'),
            latitude=row.get('latitude'),
            longitude=row.get('longitude'),
            last_scraped_at=row.get('last_scraped_at'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_complete_address(self) -> bool:
        return bool(self.address and self.city and self.state)

    def geocode_address(self) -> str:
        """Composite address sent to the geocoding provider"""
        return f"{self.address}, {self.city}, {self.state} {self.zip_code or ''}".strip()


@dataclass
class MarketStats:
    """Counts of scraped listings in one market"""
    source_market: str
    total: int = 0
    active: int = 0
    inactive: int = 0
    missing_coordinates: int = 0


def _chunks(items: List[str], size: int) -> Iterator[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class SupabaseListingStore:
    """
    Listing store over the Supabase properties table.

    Implements the operations the reconciliation engine and the geocode
    backfill worker consume: lookup by market and URL, insert, update,
    bulk deactivation, bulk scrape-timestamp refresh and the missing
    coordinates scan.
    """

    def __init__(self, supabase_client: Client, config: Optional[SyncConfig] = None):
        self.supabase = supabase_client
        self.config = config or get_config()
        self.table_name = self.config.table_name

    def _table(self):
        return self.supabase.table(self.table_name)

    def _fetch_all(self, build_query: Callable[[], Any]) -> List[Dict[str, Any]]:
        """Page through a query until a short page comes back"""
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            response = build_query().range(start, start + PAGE_SIZE - 1).execute()
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    def _scraped_in_market(self, columns: str, market: str):
        return self._table().select(columns).eq(
            'source_market', market
        ).eq(
            'data_source', self.config.data_source
        )

    # Reads

    def find_by_market_and_urls(self, market: str, urls: Iterable[str]) -> List[ListingRecord]:
        """
        Fetch scraped records of a market whose external_url is in urls.

        Args:
            market: Source market key
            urls: External URLs to look up

        Returns:
            Matching records, active and inactive
        """
        url_list = list(dict.fromkeys(urls))
        records: List[ListingRecord] = []

        try:
            for batch in _chunks(url_list, self.config.query_batch_size):
                response = self._scraped_in_market(RECORD_COLUMNS, market).in_(
                    'external_url', batch
                ).execute()
                records.extend(ListingRecord.from_row(row) for row in response.data or [])
        except Exception as e:
            logger.error(f"Error fetching listings for {market}: {e}")
            raise StoreReadError(f"Failed to fetch existing properties for {market}: {e}") from e

        return records

    def find_market_records(self, market: str) -> List[ListingRecord]:
        """All scraped records of a market with an external URL"""
        try:
            rows = self._fetch_all(
                lambda: self._scraped_in_market(RECORD_COLUMNS, market).not_.is_('external_url', 'null').order('created_at')
            )
        except Exception as e:
            logger.error(f"Error fetching listings for {market}: {e}")
            raise StoreReadError(f"Failed to fetch existing properties for {market}: {e}") from e

        return [ListingRecord.from_row(row) for row in rows]

    def find_active_urls(self, market: str) -> List[str]:
        """External URLs of the active scraped records of a market"""
        return [
            record.external_url for record in self.find_market_records(market)
            if record.is_active and record.external_url
        ]

    def find_known_urls(self, market: str) -> List[str]:
        """External URLs of every scraped record of a market, active or not"""
        return [record.external_url for record in self.find_market_records(market) if record.external_url]

    def find_missing_coordinates(self, market: Optional[str] = None) -> List[ListingRecord]:
        """
        Active records lacking latitude or longitude, oldest first.

        Args:
            market: Optional source market to scope the scan

        Returns:
            Records needing geocoding
        """
        def build_query():
            query = self._table().select(RECORD_COLUMNS).or_(
                'latitude.is.null,longitude.is.null'
            ).eq('is_active', True)
            if market:
                query = query.eq('source_market', market)
            return query.order('created_at')

        try:
            rows = self._fetch_all(build_query)
        except Exception as e:
            logger.error(f"Error fetching listings without coordinates: {e}")
            raise StoreReadError(f"Failed to fetch properties: {e}") from e

        return [ListingRecord.from_row(row) for row in rows]

    def market_stats(self, market: str) -> MarketStats:
        """Active/inactive/missing-coordinate counts for a market"""
        records = self.find_market_records(market)
        stats = MarketStats(source_market=market, total=len(records))
        for record in records:
            if record.is_active:
                stats.active += 1
                if not record.has_coordinates:
                    stats.missing_coordinates += 1
            else:
                stats.inactive += 1
        return stats

    # Writes

    def insert(self, row: Dict[str, Any]) -> str:
        """
        Insert a new listing row.

        Returns:
            The id generated by the store
        """
        url = row.get('external_url')
        try:
            response = self._table().insert(row).execute()
        except Exception as e:
            raise StoreWriteError(f"Insert failed for {url}: {e}", [url] if url else []) from e

        if not response.data:
            raise StoreWriteError(f"Insert failed for {url}: no row returned", [url] if url else [])

        return str(response.data[0]['id'])

    def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        """Update one listing row by id"""
        try:
            self._table().update(fields).eq('id', record_id).execute()
        except Exception as e:
            raise StoreWriteError(f"Update failed for property {record_id}: {e}") from e

    def bulk_deactivate(self, market: str, urls: List[str], now: Optional[datetime] = None) -> int:
        """
        Mark records of a market inactive.

        Only is_active and updated_at change; last_scraped_at and all
        descriptive fields are left as they were.

        Returns:
            Number of rows the store reports as updated
        """
        if not urls:
            return 0

        timestamp = (now or datetime.now(timezone.utc)).isoformat()
        try:
            response = self._scraped_in_market_update(
                {'is_active': False, 'updated_at': timestamp}, market
            ).in_('external_url', urls).eq('is_active', True).execute()
        except Exception as e:
            raise StoreWriteError(f"Deactivation failed for {market}: {e}", urls) from e

        return len(response.data or [])

    def refresh_scraped_at(self, market: str, urls: List[str], now: Optional[datetime] = None) -> int:
        """
        Advance last_scraped_at for active records confirmed in the latest snapshot.

        Returns:
            Number of rows refreshed
        """
        if not urls:
            return 0

        timestamp = (now or datetime.now(timezone.utc)).isoformat()
        try:
            response = self._scraped_in_market_update(
                {'last_scraped_at': timestamp}, market
            ).eq('is_active', True).in_('external_url', urls).execute()
        except Exception as e:
            raise StoreWriteError(f"Refresh failed for {market}: {e}", urls) from e

        return len(response.data or [])

    def _scraped_in_market_update(self, fields: Dict[str, Any], market: str):
        return self._table().update(fields).eq(
            'source_market', market
        ).eq(
            'data_source', self.config.data_source
        )
