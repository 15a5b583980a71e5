import json
from datetime import datetime

import pytest

from sync_config.sync_config import SyncConfig
from sync_services.errors import SnapshotFormatError
from sync_services.listing_transform import (
    ListingSnapshot,
    build_description,
    extract_contact_info,
    load_snapshot_file,
    parse_city_state,
    parse_price,
    parse_square_feet,
    standardize_property_type,
    to_insert_row,
    to_update_fields,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)

RAW_SCRAPER_LISTING = {
    'url': 'https://www.example.com/listing/3-bed-house-12345678/',
    'title': '3 Bed House',
    'address': '42 Oak Ave',
    'zipCode': '36104',
    'rent': '$1,250',
    'bedrooms': '3',
    'bathrooms': '2.5',
    'squareFeet': '1,400',
    'propertyType': 'Single Family Home',
    'listedBy': 'Acme Rentals',
    'phoneNumber': '(334) 555-0100',
    'description': 'Spacious home near downtown.',
    'availability': 'Now',
    'features': ['Garage', 'Fenced yard'],
    'images': ['https://cdn.example.com/1.jpg'],
}


def test_from_dict_accepts_raw_scraper_shape():
    snapshot = ListingSnapshot.from_dict(RAW_SCRAPER_LISTING)

    assert snapshot.price == '$1,250'
    assert snapshot.sqft == '1,400'
    assert snapshot.zip_code == '36104'
    assert snapshot.listed_by == 'Acme Rentals'


def test_from_dict_requires_url():
    with pytest.raises(SnapshotFormatError):
        ListingSnapshot.from_dict({'title': 'No url'})


def test_parse_city_state():
    assert parse_city_state('montgomery-al') == ('Montgomery', 'AL')
    assert parse_city_state('new-orleans-la') == ('New Orleans', 'LA')


@pytest.mark.parametrize('value,expected', [
    ('$1,200', 1200),
    ('$950/mo', 950),
    (1100, 1100),
    ('Call for price', 0),
    (None, 0),
])
def test_parse_price(value, expected):
    assert parse_price(value) == expected


def test_parse_square_feet():
    assert parse_square_feet('1,200') == 1200
    assert parse_square_feet('') is None
    assert parse_square_feet('n/a') is None


@pytest.mark.parametrize('value,expected', [
    ('Single Family Home', 'house'),
    ('Townhouse', 'townhouse'),
    ('Apartment', 'apartment'),
    ('Condo', 'condo'),
    ('Duplex', 'house'),
])
def test_standardize_property_type(value, expected):
    assert standardize_property_type(value) == expected


def test_build_description_appends_availability_and_features():
    snapshot = ListingSnapshot.from_dict(RAW_SCRAPER_LISTING)

    assert build_description(snapshot) == (
        'Spacious home near downtown.\n\nAvailable: Now\n\nFeatures: Garage, Fenced yard'
    )


def test_extract_contact_info_from_description():
    name, phone, cleaned = extract_contact_info(
        'Nice place | Listed by: Jane Doe | Phone: 555-1234'
    )

    assert name == 'Jane Doe'
    assert phone == '555-1234'
    assert cleaned == 'Nice place'


def test_extract_contact_info_without_contact():
    assert extract_contact_info('Just a house') == (None, None, 'Just a house')


def test_insert_row_fields():
    snapshot = ListingSnapshot.from_dict(RAW_SCRAPER_LISTING)
    row = to_insert_row(snapshot, 'montgomery-al', SyncConfig(), NOW)

    assert row['is_active'] is True
    assert row['data_source'] == 'scraped'
    assert row['source_market'] == 'montgomery-al'
    assert row['external_url'] == RAW_SCRAPER_LISTING['url']
    assert row['external_id'] == '12345678'
    assert row['last_scraped_at'] == NOW.isoformat()
    assert row['city'] == 'Montgomery'
    assert row['state'] == 'AL'
    assert row['price'] == 1250
    assert row['bedrooms'] == 3
    assert row['bathrooms'] == 2.5
    assert row['sqft'] == 1400
    assert row['property_type'] == 'house'
    assert row['scraped_contact_name'] == 'Acme Rentals'
    assert row['latitude'] is None and row['longitude'] is None
    assert 'landlord_id' not in row


def test_insert_row_uses_system_landlord():
    config = SyncConfig(system_landlord_id='landlord-1')
    row = to_insert_row(ListingSnapshot.from_dict(RAW_SCRAPER_LISTING), 'montgomery-al', config, NOW)

    assert row['landlord_id'] == 'landlord-1'


def test_update_fields_leave_provenance_and_coordinates():
    fields = to_update_fields(ListingSnapshot.from_dict(RAW_SCRAPER_LISTING), 'montgomery-al', SyncConfig(), NOW)

    for key in ('is_active', 'latitude', 'longitude', 'created_at', 'data_source', 'source_market'):
        assert key not in fields
    assert fields['last_scraped_at'] == NOW.isoformat()


def test_load_snapshot_file(tmp_path):
    path = tmp_path / 'results.json'
    path.write_text(json.dumps([RAW_SCRAPER_LISTING]), encoding='utf-8')

    [snapshot] = load_snapshot_file(path)

    assert snapshot.url == RAW_SCRAPER_LISTING['url']


def test_load_snapshot_file_rejects_non_array(tmp_path):
    path = tmp_path / 'results.json'
    path.write_text(json.dumps({'listings': []}), encoding='utf-8')

    with pytest.raises(SnapshotFormatError):
        load_snapshot_file(path)


def test_load_snapshot_file_rejects_invalid_utf8(tmp_path):
    path = tmp_path / 'results.json'
    path.write_bytes(b'[{"url": "\xff\xfe"}]')

    with pytest.raises(SnapshotFormatError):
        load_snapshot_file(path)
