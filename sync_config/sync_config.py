"""
Sync Configuration for the Listing Reconciliation Jobs

This module loads configuration from sync_config.yaml and provides
typed access to store, reconciliation, geocoding and logging settings.

Environment variables override the YAML values for the settings that
operators commonly tune per deployment:
- SYNC_DEACTIVATION_ALERT_THRESHOLD
- GEOCODE_DELAY_SECONDS / GEOCODE_PAUSE_EVERY
- SYNC_LOG_LEVEL
- SYSTEM_LANDLORD_ID
- GOOGLE_MAPS_API_KEY
"""

import os
import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Main configuration class for the listing sync jobs"""

    # Listing store
    table_name: str = "properties"
    data_source: str = "scraped"
    query_batch_size: int = 200  # Max URLs per `in` filter
    write_batch_size: int = 100  # Max URLs per bulk update

    # Reconciliation
    deactivation_alert_threshold: int = 10
    default_property_type: str = "house"
    market_pattern: str = r"^[a-z-]+-[a-z]{2}$"
    system_landlord_id: Optional[str] = None

    # Geocoding
    geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    google_maps_api_key: Optional[str] = None
    request_timeout: int = 20  # seconds
    geocode_delay_seconds: float = 0.1  # Google allows 50 requests per second
    geocode_pause_every: int = 10
    geocode_pause_seconds: float = 1.0
    geocode_on_import: bool = False

    # Logging
    logs_dir: str = "logs"
    log_file: str = "listing_sync.log"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate settings after initialization"""
        assert self.query_batch_size > 0, f"Query batch size must be positive: {self.query_batch_size}"
        assert self.write_batch_size > 0, f"Write batch size must be positive: {self.write_batch_size}"
        assert self.geocode_pause_every > 0, f"Pause interval must be positive: {self.geocode_pause_every}"
        assert self.geocode_delay_seconds >= 0, f"Delay must be non-negative: {self.geocode_delay_seconds}"

    def validate_market(self, market: str) -> bool:
        """Check a market key against the city-state slug format (e.g. montgomery-al)"""
        if not market:
            return False
        return re.match(self.market_pattern, market) is not None

    def is_deactivation_spike(self, deactivated_count: int) -> bool:
        """Large deactivation counts usually point at a scraper fault, not market churn"""
        return deactivated_count > self.deactivation_alert_threshold


def _load_yaml_config() -> Dict:
    """Load configuration from YAML file"""
    config_path = Path(__file__).parent / "sync_config.yaml"

    if not config_path.exists():
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
            logger.debug(f"Loaded configuration from {config_path}")
            return config or {}
    except Exception as e:
        logger.error(f"Error loading config from {config_path}: {e}")
        return {}


def _build_config_from_yaml(yaml_config: Dict) -> SyncConfig:
    """Build SyncConfig from YAML configuration with environment variable overrides"""

    store = yaml_config.get('store', {})
    reconciliation = yaml_config.get('reconciliation', {})
    geocoding = yaml_config.get('geocoding', {})
    logging_config = yaml_config.get('logging', {})

    return SyncConfig(
        # Store
        table_name=store.get('table_name', "properties"),
        data_source=store.get('data_source', "scraped"),
        query_batch_size=store.get('query_batch_size', 200),
        write_batch_size=store.get('write_batch_size', 100),

        # Reconciliation
        deactivation_alert_threshold=int(os.getenv(
            "SYNC_DEACTIVATION_ALERT_THRESHOLD",
            reconciliation.get('deactivation_alert_threshold', 10)
        )),
        default_property_type=reconciliation.get('default_property_type', "house"),
        market_pattern=reconciliation.get('market_pattern', r"^[a-z-]+-[a-z]{2}$"),
        system_landlord_id=os.getenv("SYSTEM_LANDLORD_ID", reconciliation.get('system_landlord_id')),

        # Geocoding
        geocode_url=geocoding.get('url', "https://maps.googleapis.com/maps/api/geocode/json"),
        google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY"),
        request_timeout=geocoding.get('request_timeout', 20),
        geocode_delay_seconds=float(os.getenv("GEOCODE_DELAY_SECONDS", geocoding.get('delay_seconds', 0.1))),
        geocode_pause_every=int(os.getenv("GEOCODE_PAUSE_EVERY", geocoding.get('pause_every', 10))),
        geocode_pause_seconds=geocoding.get('pause_seconds', 1.0),
        geocode_on_import=bool(geocoding.get('geocode_on_import', False)),

        # Logging
        logs_dir=logging_config.get('logs_dir', "logs"),
        log_file=logging_config.get('log_file', "listing_sync.log"),
        log_level=os.getenv("SYNC_LOG_LEVEL", logging_config.get('log_level', "INFO")),
    )


# Global configuration instance
_config: Optional[SyncConfig] = None


def get_config(reload: bool = False) -> SyncConfig:
    """
    Get the global configuration instance.

    Args:
        reload: If True, reload configuration from YAML file

    Returns:
        SyncConfig instance
    """
    global _config
    if _config is None or reload:
        yaml_config = _load_yaml_config()
        _config = _build_config_from_yaml(yaml_config)
    return _config


def reload_config() -> SyncConfig:
    """Force reload configuration from YAML file"""
    return get_config(reload=True)


def set_config(config: Optional[SyncConfig]) -> None:
    """Set the global configuration instance (useful for testing)"""
    global _config
    _config = config
