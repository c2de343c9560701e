"""Request metadata helpers: user agent parsing, IP hashing, consent detection."""

from __future__ import annotations

import hashlib
import random
import re
import time
from dataclasses import dataclass
from urllib.parse import urlparse

from halotrack.tracking.schema import ConsentStatus

# Consent cookies written by common consent management platforms
CONSENT_COOKIE_NAMES = ("cookieyes-consent", "CookieConsent", "cookie_consent")


@dataclass
class UserAgentInfo:
    """Parsed user agent."""

    device_type: str = "desktop"
    browser: str = "Unknown"
    browser_version: str = ""
    os: str = "Unknown"
    os_version: str = ""


def parse_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Extract device type, browser and OS from a user agent string.

    Example:
        >>> info = parse_user_agent("Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) Mobile Safari")
        >>> info.device_type
        'mobile'
    """
    ua = user_agent or ""
    info = UserAgentInfo()

    if re.search(r"mobile", ua, re.I):
        info.device_type = "mobile"
    elif re.search(r"tablet|ipad", ua, re.I):
        info.device_type = "tablet"

    if re.search(r"edg", ua, re.I):
        info.browser = "Edge"
        info.browser_version = _first_group(r"edg/(\d+)", ua)
    elif re.search(r"chrome", ua, re.I):
        info.browser = "Chrome"
        info.browser_version = _first_group(r"chrome/(\d+)", ua)
    elif re.search(r"safari", ua, re.I):
        info.browser = "Safari"
        info.browser_version = _first_group(r"version/(\d+)", ua)
    elif re.search(r"firefox", ua, re.I):
        info.browser = "Firefox"
        info.browser_version = _first_group(r"firefox/(\d+)", ua)

    # iOS user agents also say "like Mac OS X", so check them first
    if re.search(r"windows", ua, re.I):
        info.os = "Windows"
        info.os_version = _first_group(r"windows nt (\d+\.\d+)", ua)
    elif re.search(r"iphone|ipad", ua, re.I):
        info.os = "iOS"
        info.os_version = _first_group(r"os (\d+[._]\d+)", ua).replace("_", ".")
    elif re.search(r"mac os", ua, re.I):
        info.os = "macOS"
        info.os_version = _first_group(r"mac os x (\d+[._]\d+)", ua).replace("_", ".")
    elif re.search(r"android", ua, re.I):
        info.os = "Android"
        info.os_version = _first_group(r"android (\d+\.?\d*)", ua)

    return info


def _first_group(pattern: str, text: str) -> str:
    match = re.search(pattern, text, re.I)
    return match.group(1) if match else ""


def hash_ip(ip_address: str | None) -> str:
    """SHA-256 of the client IP, truncated to 32 hex characters."""
    return hashlib.sha256((ip_address or "unknown").encode("utf-8")).hexdigest()[:32]


def client_ip(forwarded_for: str | None) -> str:
    """First address of an X-Forwarded-For header."""
    if not forwarded_for:
        return "unknown"
    return forwarded_for.split(",")[0].strip() or "unknown"


def primary_language(accept_language: str | None) -> str:
    """First entry of an Accept-Language header."""
    if not accept_language:
        return "unknown"
    return accept_language.split(",")[0].strip() or "unknown"


def detect_consent(cookies: dict[str, str]) -> ConsentStatus:
    """Read tracking consent from CookieYes or Cookiebot cookies.

    Cookiebot's statistics flag wins over CookieYes flags when both appear.
    """
    value = next((cookies[name] for name in CONSENT_COOKIE_NAMES if cookies.get(name)), None)
    if not value:
        return ConsentStatus.UNKNOWN

    status = ConsentStatus.UNKNOWN
    if "analytics:yes" in value or "advertisement:yes" in value:
        status = ConsentStatus.GRANTED
    elif "analytics:no" in value:
        status = ConsentStatus.DENIED

    if "statistics:true" in value:
        status = ConsentStatus.GRANTED
    elif "statistics:false" in value:
        status = ConsentStatus.DENIED

    return status


def referrer_domain(referrer: str | None, site_host: str | None = None) -> str | None:
    """Hostname of an external referrer, or None for self-referrals."""
    if not referrer:
        return None
    if site_host and site_host in referrer:
        return None
    try:
        host = urlparse(referrer).hostname
    except ValueError:
        return None
    return host or None


def facebook_browser_ids(
    fbclid: str | None,
    fbc: str | None,
    fbp: str | None,
    now_ms: int | None = None,
) -> tuple[str | None, str]:
    """Return (fbc, fbp), generating Meta's cookie values where missing."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if not fbc and fbclid:
        fbc = f"fb.1.{now_ms}.{fbclid}"
    if not fbp:
        fbp = f"fb.1.{now_ms}.{random.randint(0, 9_999_999_999)}"
    return fbc, fbp
