"""
Listing URL helpers

The scraper's canonical listing URL is the natural key for matching a
snapshot entry against a stored record within one market. These helpers
normalize URLs for duplicate detection and derive the numeric listing id
the source site embeds in its URLs.

The stored `external_url` is always the URL exactly as the scraper
reported it; normalization is only used to spot duplicates inside a
single snapshot.
"""

import re
from urllib.parse import urlparse, urlunparse

_LISTING_ID_PATTERN = re.compile(r"-(\d{6,})/")


def normalize_url(source_url: str) -> str:
    """
    Normalize a URL for duplicate detection.

    Normalization steps:
    1. Lowercase scheme and host
    2. Remove query parameters and fragment
    3. Remove trailing slashes from the path

    Args:
        source_url: The full listing URL

    Returns:
        Normalized URL string
    """
    if not source_url:
        return ""

    try:
        parsed = urlparse(source_url.strip())
        path = parsed.path.rstrip('/')

        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            path,
            '',  # params
            '',  # query
            ''   # fragment
        ))

    except ValueError:
        return source_url.strip().rstrip('/').split('?')[0].split('#')[0]


def generate_external_id(source_url: str) -> str:
    """
    Extract the source site's listing id from a listing URL.

    Examples:
        https://example.com/listing/2-bed-house-12345678/ -> 12345678
        https://example.com/rentals/unit-42a -> 42

    Args:
        source_url: The full URL to the listing detail page

    Returns:
        The listing id, or an empty string when the URL carries none
    """
    if not source_url:
        return ""

    match = _LISTING_ID_PATTERN.search(source_url)
    if match:
        return match.group(1)

    last_segment = source_url.rstrip('/').split('/')[-1]
    return re.sub(r"[^0-9]", "", last_segment)


__all__ = ['normalize_url', 'generate_external_id']
