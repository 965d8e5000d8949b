"""
Referrer helpers shared by the dashboard and the legacy summary.
"""

from typing import Optional
from urllib.parse import urlparse


def referrer_hostname(referrer: Optional[str]) -> Optional[str]:
    """Lower-cased hostname of a referrer URL, or None if it has none."""
    if not referrer:
        return None
    parsed = urlparse(referrer if "//" in referrer else f"//{referrer}")
    return parsed.hostname or None


def is_internal_referrer(referrer: Optional[str], site_hostname: Optional[str]) -> bool:
    """Whether the referrer is the site itself or one of its subdomains."""
    if not site_hostname:
        return False
    hostname = referrer_hostname(referrer)
    if hostname is None:
        return False
    site = site_hostname.lower()
    return hostname == site or hostname.endswith(f".{site}")
