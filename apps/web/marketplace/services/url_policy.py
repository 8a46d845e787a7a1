"""
URL policy for anything that leaves in a catalog submission.

The Marketplace rejects image and callback URLs that are not absolute
https, or that point at development hosts. Offending URLs are stripped
rather than failing the submission.
"""

import logging
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

BLOCKED_MARKERS = ("localhost", "127.0.0.1", "test.", "example.", "placeholder")


def upgrade_to_https(url: str) -> str:
    """Rewrite a plain http URL to https."""
    if url.lower().startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


def is_allowed_url(url: str | None) -> bool:
    """
    Check whether a URL may appear in a submitted catalog.

    Args:
        url: Candidate URL.

    Returns:
        True if the URL is absolute https and carries no blocked marker.
    """
    if not url:
        return False

    parts = urlsplit(url.strip())
    if parts.scheme.lower() != "https" or not parts.netloc:
        return False

    lowered = url.lower()
    return not any(marker in lowered for marker in BLOCKED_MARKERS)


def sanitize_image_url(url: str | None) -> str | None:
    """Return an https image URL, or None if it must be dropped."""
    if not url:
        return None
    candidate = upgrade_to_https(url.strip())
    if not is_allowed_url(candidate):
        logger.debug("Dropping image URL %s", url)
        return None
    return candidate


def sanitize_callback_url(url: str | None) -> str | None:
    """Return the callback URL if it is allowed, else None."""
    if not url:
        return None
    candidate = url.strip()
    if not is_allowed_url(candidate):
        logger.warning("Dropping disallowed catalog callback URL %s", url)
        return None
    return candidate
