"""
Geocoding Provider

Server-side address geocoding against the Google Maps Geocoding API.
Failures never propagate to callers: any HTTP, network, parsing or API
status problem is logged and reported as a missing result (None).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from sync_config.sync_config import SyncConfig, get_config
from .errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class GeocodeResult:
    """Coordinates for one address"""
    lat: float
    lng: float
    formatted_address: str = ""


class GoogleGeocodingProvider:
    """Geocoding provider backed by the Google Maps Geocoding API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[SyncConfig] = None,
        session: Optional[requests.Session] = None
    ):
        self.config = config or get_config()
        self.api_key = api_key if api_key is not None else self.config.google_maps_api_key
        self.session = session or requests.Session()

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        """
        Resolve an address to coordinates.

        Args:
            address: Free-text address

        Returns:
            GeocodeResult, or None when the provider has no usable answer
        """
        if not self.api_key:
            logger.warning("Google Maps API key not configured for geocoding")
            return None

        try:
            payload = self._request(address)
            return self._parse(address, payload)
        except ProviderError as e:
            logger.warning(f"Geocoding failed for address \"{address}\": {e}")
            return None

    def _request(self, address: str) -> Dict[str, Any]:
        try:
            response = self.session.get(
                self.config.geocode_url,
                params={'address': address, 'key': self.api_key},
                timeout=self.config.request_timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise ProviderError("Request timed out") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request error: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from geocoding API: {e}") from e

        if not isinstance(payload, dict):
            raise ProviderError("Unexpected response format")
        return payload

    def _parse(self, address: str, payload: Dict[str, Any]) -> Optional[GeocodeResult]:
        status = payload.get('status', '')
        if status == 'ZERO_RESULTS':
            logger.info(f"No geocoding results for address \"{address}\"")
            return None
        if status != 'OK':
            message = payload.get('error_message', 'Unknown API error')
            raise ProviderError(f"status={status}: {message}")

        results = payload.get('results') or []
        if not results:
            return None

        try:
            location = results[0]['geometry']['location']
            return GeocodeResult(
                lat=float(location['lat']),
                lng=float(location['lng']),
                formatted_address=results[0].get('formatted_address', '')
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Unexpected response format: {e}") from e
