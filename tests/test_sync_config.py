import pytest

from sync_config.listing_url import generate_external_id, normalize_url
from sync_config.sync_config import SyncConfig, get_config, reload_config, set_config


@pytest.fixture(autouse=True)
def reset_config():
    set_config(None)
    yield
    set_config(None)


def test_yaml_defaults_load():
    config = get_config()

    assert config.table_name == 'properties'
    assert config.data_source == 'scraped'
    assert config.deactivation_alert_threshold == 10
    assert config.geocode_pause_every == 10


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('SYNC_DEACTIVATION_ALERT_THRESHOLD', '25')
    monkeypatch.setenv('GEOCODE_DELAY_SECONDS', '0.5')
    monkeypatch.setenv('SYSTEM_LANDLORD_ID', 'landlord-1')

    config = reload_config()

    assert config.deactivation_alert_threshold == 25
    assert config.geocode_delay_seconds == 0.5
    assert config.system_landlord_id == 'landlord-1'


def test_set_config_replaces_global_instance():
    custom = SyncConfig(write_batch_size=5)
    set_config(custom)

    assert get_config() is custom


@pytest.mark.parametrize('market,valid', [
    ('montgomery-al', True),
    ('new-orleans-la', True),
    ('Montgomery-AL', False),
    ('montgomery', False),
    ('', False),
])
def test_validate_market(market, valid):
    assert SyncConfig().validate_market(market) is valid


def test_deactivation_spike_threshold():
    config = SyncConfig(deactivation_alert_threshold=10)

    assert not config.is_deactivation_spike(10)
    assert config.is_deactivation_spike(11)


def test_invalid_settings_are_rejected():
    with pytest.raises(AssertionError):
        SyncConfig(geocode_pause_every=0)


def test_normalize_url():
    assert normalize_url('HTTPS://Example.com/Listing/abc/?utm=1#photos') == 'https://example.com/Listing/abc'
    assert normalize_url('') == ''


@pytest.mark.parametrize('url,expected', [
    ('https://example.com/listing/2-bed-house-12345678/', '12345678'),
    ('https://example.com/rentals/unit-42a', '42'),
    ('https://example.com/rentals/', ''),
    ('', ''),
])
def test_generate_external_id(url, expected):
    assert generate_external_id(url) == expected
