"""
Listing Snapshot Transform

Converts scraper output into listing store rows. Scraper files come in two
shapes: the normalized snapshot shape (price, sqft, propertyType, city,
state) and the raw scraper shape (rent, squareFeet, listedBy, phoneNumber,
availability, features). Both are accepted by ListingSnapshot.from_dict.
"""

import json
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from sync_config.listing_url import generate_external_id
from sync_config.sync_config import SyncConfig
from .errors import SnapshotFormatError

logger = logging.getLogger(__name__)

_LISTED_BY_PATTERN = re.compile(r"Listed by:\s*([^|\n]+)", re.IGNORECASE)
_PHONE_PATTERN = re.compile(r"Phone:\s*([^|\n]+)", re.IGNORECASE)


@dataclass
class ListingSnapshot:
    """One listing as observed by the scraper"""
    url: str
    title: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: Optional[str] = None
    price: Union[str, float, int, None] = None
    bedrooms: Union[str, float, int, None] = None
    bathrooms: Union[str, float, int, None] = None
    sqft: Union[str, int, None] = None
    description: str = ""
    property_type: str = ""
    images: List[str] = field(default_factory=list)
    listed_by: Optional[str] = None
    phone_number: Optional[str] = None
    availability: Optional[str] = None
    features: Union[List[str], str, None] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ListingSnapshot':
        """Build a snapshot from a scraper JSON object"""
        if not isinstance(data, dict):
            raise SnapshotFormatError(f"Expected listing object, got {type(data).__name__}")

        url = (data.get('url') or '').strip()
        if not url:
            raise SnapshotFormatError(f"Listing without url: {data.get('title') or data.get('address')}")

        images = data.get('images') or []
        if isinstance(images, str):
            images = [images]

        return cls(
            url=url,
            title=data.get('title') or '',
            address=data.get('address') or '',
            city=data.get('city') or '',
            state=data.get('state') or '',
            zip_code=data.get('zipCode') or data.get('zip_code') or None,
            price=data.get('price', data.get('rent')),
            bedrooms=data.get('bedrooms'),
            bathrooms=data.get('bathrooms'),
            sqft=data.get('sqft', data.get('squareFeet')),
            description=data.get('description') or '',
            property_type=data.get('propertyType') or data.get('property_type') or '',
            images=list(images),
            listed_by=data.get('listedBy') or None,
            phone_number=data.get('phoneNumber') or None,
            availability=data.get('availability') or None,
            features=data.get('features'),
        )


def load_snapshot_file(file_path: Union[str, Path]) -> List[ListingSnapshot]:
    """
    Read a scraper results file.

    Args:
        file_path: Path to a JSON file holding an array of listings

    Returns:
        List of ListingSnapshot objects
    """
    path = Path(file_path)
    if not path.exists():
        raise SnapshotFormatError(f"Scraper file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotFormatError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise SnapshotFormatError("Invalid scraper data format - expected array")

    snapshots = [ListingSnapshot.from_dict(item) for item in data]
    logger.info(f"Loaded {len(snapshots)} listings from {path}")
    return snapshots


def parse_city_state(market: str) -> Tuple[str, str]:
    """Split a market slug into city and state: montgomery-al -> (Montgomery, AL)"""
    parts = market.split('-')
    state = parts.pop().upper() if parts else ''
    city = ' '.join(parts).title()
    return city, state


def parse_price(value: Union[str, float, int, None]) -> int:
    """Parse a rent value like "$1,200" into 1200; unparsable values become 0"""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)

    cleaned = re.sub(r"[$,\s]", "", str(value))
    match = re.match(r"\d+", cleaned)
    return int(match.group(0)) if match else 0


def parse_square_feet(value: Union[str, int, None]) -> Optional[int]:
    """Parse a size like "1,200" into 1200; blank or unparsable values become None"""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)

    cleaned = re.sub(r"[,\s]", "", str(value))
    match = re.match(r"\d+", cleaned)
    return int(match.group(0)) if match else None


def _parse_int(value: Union[str, float, int, None]) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _parse_float(value: Union[str, float, int, None]) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def standardize_property_type(property_type: str, default: str = "house") -> str:
    type_lower = (property_type or '').lower()
    if 'townhouse' in type_lower:
        return 'townhouse'
    if 'single family' in type_lower or 'house' in type_lower:
        return 'house'
    if 'apartment' in type_lower:
        return 'apartment'
    if 'condo' in type_lower:
        return 'condo'
    return default


def build_description(snapshot: ListingSnapshot) -> str:
    """Append availability and features paragraphs to the listing description"""
    description = snapshot.description or ''

    if snapshot.availability:
        description += ('\n\n' if description else '') + f"Available: {snapshot.availability}"

    features_text = ''
    if isinstance(snapshot.features, list):
        features_text = ', '.join(str(f) for f in snapshot.features if f)
    elif isinstance(snapshot.features, str):
        features_text = snapshot.features.strip()

    if features_text:
        description += ('\n\n' if description else '') + f"Features: {features_text}"

    return description.strip()


def extract_contact_info(description: str) -> Tuple[Optional[str], Optional[str], str]:
    """
    Pull "Listed by:" and "Phone:" fragments out of a description.

    Args:
        description: Listing description text

    Returns:
        Tuple of (contact_name, contact_phone, cleaned_description)
    """
    if not description:
        return None, None, description or ''

    name_match = _LISTED_BY_PATTERN.search(description)
    phone_match = _PHONE_PATTERN.search(description)

    contact_name = name_match.group(1).strip() if name_match else None
    contact_phone = phone_match.group(1).strip() if phone_match else None

    if not (contact_name or contact_phone):
        return None, None, description

    cleaned = re.sub(r"(?:Listed by|Phone):[ \t]*[^|\n]*(?:\|[ \t]*)?", "", description, flags=re.IGNORECASE)
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"\n[ \t]*(?:\n[ \t]*)+", "\n\n", cleaned).strip(" |\n\t")

    return contact_name, contact_phone, cleaned


def _descriptive_fields(snapshot: ListingSnapshot, market: str, config: SyncConfig) -> Dict[str, Any]:
    market_city, market_state = parse_city_state(market)

    extracted_name, extracted_phone, cleaned = extract_contact_info(snapshot.description)
    description = build_description(replace(snapshot, description=cleaned))

    return {
        'title': snapshot.title or 'Untitled Property',
        'description': description,
        'price': parse_price(snapshot.price),
        'property_type': standardize_property_type(snapshot.property_type, config.default_property_type),
        'address': snapshot.address or '',
        'city': snapshot.city or market_city,
        'state': (snapshot.state or market_state).upper(),
        'zip_code': snapshot.zip_code or None,
        'bedrooms': _parse_int(snapshot.bedrooms),
        'bathrooms': _parse_float(snapshot.bathrooms),
        'sqft': parse_square_feet(snapshot.sqft),
        'images': snapshot.images or None,
        'scraped_contact_name': snapshot.listed_by or extracted_name,
        'scraped_contact_phone': snapshot.phone_number or extracted_phone,
    }


def to_insert_row(snapshot: ListingSnapshot, market: str, config: SyncConfig, now: datetime) -> Dict[str, Any]:
    """
    Build a full store row for a newly observed listing.

    Args:
        snapshot: Scraped listing
        market: Source market key
        config: Sync configuration
        now: Timestamp for this sync pass

    Returns:
        Row dict ready for insertion
    """
    timestamp = now.isoformat()
    row = _descriptive_fields(snapshot, market, config)
    row.update({
        'is_active': True,
        'data_source': config.data_source,
        'external_url': snapshot.url,
        'external_id': generate_external_id(snapshot.url),
        'source_market': market,
        'last_scraped_at': timestamp,
        'latitude': None,
        'longitude': None,
        'created_at': timestamp,
        'updated_at': timestamp,
    })
    if config.system_landlord_id:
        row['landlord_id'] = config.system_landlord_id
    return row


def to_update_fields(snapshot: ListingSnapshot, market: str, config: SyncConfig, now: datetime) -> Dict[str, Any]:
    """Descriptive refresh for an existing record; coordinates and provenance are left alone"""
    timestamp = now.isoformat()
    fields = _descriptive_fields(snapshot, market, config)
    fields.update({
        'external_id': generate_external_id(snapshot.url),
        'last_scraped_at': timestamp,
        'updated_at': timestamp,
    })
    return fields
