"""
Tracking schema - visitor sessions, touchpoints and tracked events.

A session is the attribution record for one visitor-tracking lifetime. It holds
a first-touch snapshot (written once), a last-touch snapshot (overwritten by
every touch that carries marketing data), the ad-platform click identifiers and
an immutable device/geo snapshot from the first touch.

Touchpoints are the append-only journal of every marketing touch observed for a
session. They are what the multi-touch credit allocator replays at reporting
time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# Ad-platform click identifiers captured from landing URLs and cookies
CLICK_ID_FIELDS = (
    "gclid",
    "gbraid",
    "wbraid",
    "fbclid",
    "fbc",
    "fbp",
    "ttclid",
    "msclkid",
)

# Click identifiers that arrive on a landing URL (fbc/fbp are cookies)
URL_CLICK_ID_FIELDS = ("gclid", "gbraid", "wbraid", "fbclid", "ttclid", "msclkid")


class ConsentStatus(str, Enum):
    """Tracking consent reported by the visitor's consent manager."""

    GRANTED = "granted"
    DENIED = "denied"
    UNKNOWN = "unknown"


@dataclass
class TouchData:
    """One marketing touch as seen on a landing page."""

    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None
    referrer: str | None = None  # Referrer hostname
    referrer_full: str | None = None
    landing: str | None = None  # Path plus query string
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored attribution shape (referrer_full omitted)."""
        return {
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
            "term": self.term,
            "content": self.content,
            "referrer": self.referrer,
            "landing": self.landing,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TouchData | None:
        """Rebuild a touch from its stored shape."""
        if not data:
            return None
        return cls(
            source=data.get("source"),
            medium=data.get("medium"),
            campaign=data.get("campaign"),
            term=data.get("term"),
            content=data.get("content"),
            referrer=data.get("referrer"),
            referrer_full=data.get("referrer_full"),
            landing=data.get("landing"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass
class ClickIds:
    """Ad-platform click identifiers attached to a visitor."""

    gclid: str | None = None
    gbraid: str | None = None
    wbraid: str | None = None
    fbclid: str | None = None
    fbc: str | None = None
    fbp: str | None = None
    ttclid: str | None = None
    msclkid: str | None = None

    def has_any(self, names: tuple[str, ...] = CLICK_ID_FIELDS) -> bool:
        """Return True if any of the named identifiers is set."""
        return any(getattr(self, name) for name in names)

    def merge(self, other: ClickIds) -> ClickIds:
        """Return a copy updated with every non-empty identifier from other.

        Identifiers missing from other are preserved.
        """
        merged = {
            name: getattr(other, name) or getattr(self, name)
            for name in CLICK_ID_FIELDS
        }
        return ClickIds(**merged)

    def to_dict(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in CLICK_ID_FIELDS}


@dataclass
class DeviceData:
    """Device, geo and locale snapshot taken on the first touch."""

    user_agent: str | None = None
    device_type: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    ip_hash: str | None = None
    country: str | None = None
    city: str | None = None
    region: str | None = None
    language: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        """Serialize to the stored attribution device shape."""
        return {
            "type": self.device_type,
            "browser": self.browser,
            "os": self.os,
            "country": self.country,
        }


@dataclass
class Session:
    """
    Attribution session for one visitor.

    Invariants:
        - one session per (client_id, session_id)
        - first_touch is written when the session is created and never changes
        - last_touch follows the most recent touch that carried marketing data
        - updated_at is the wall-clock time of the last update
    """

    client_id: str
    session_id: str

    first_touch: TouchData = field(default_factory=TouchData)
    last_touch: TouchData = field(default_factory=TouchData)
    click_ids: ClickIds = field(default_factory=ClickIds)
    device: DeviceData = field(default_factory=DeviceData)

    # Identity (attached later by the identify call)
    email: str | None = None
    phone: str | None = None
    external_id: str | None = None

    consent_status: ConsentStatus = ConsentStatus.UNKNOWN
    custom_params: dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class Touchpoint:
    """A journaled marketing touch for a session."""

    client_id: str
    session_id: str
    touchpoint_number: int
    timestamp: datetime
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None
    referrer: str | None = None
    landing: str | None = None
    click_ids: ClickIds = field(default_factory=ClickIds)

    def __post_init__(self) -> None:
        self.timestamp = parse_timestamp(self.timestamp) or datetime.now(UTC)

    @classmethod
    def from_touch(
        cls,
        client_id: str,
        session_id: str,
        number: int,
        touch: TouchData,
        click_ids: ClickIds | None = None,
    ) -> Touchpoint:
        """Build a journal row from a touch."""
        return cls(
            client_id=client_id,
            session_id=session_id,
            touchpoint_number=number,
            timestamp=touch.timestamp or datetime.now(UTC),
            source=touch.source,
            medium=touch.medium,
            campaign=touch.campaign,
            term=touch.term,
            content=touch.content,
            referrer=touch.referrer,
            landing=touch.landing,
            click_ids=click_ids or ClickIds(),
        )


@dataclass
class TrackedEvent:
    """A custom or page-view event tied to a session."""

    client_id: str
    session_id: str
    event_name: str
    properties: dict[str, Any] = field(default_factory=dict)
    page_url: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class AnonymousEvent:
    """A consent-denied page view: marketing fields only, no session or PII."""

    client_id: str
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    referrer_domain: str | None = None
    page_path: str | None = None
    event_type: str = "page_view"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def has_marketing_signal(touch: TouchData, click_ids: ClickIds | None = None) -> bool:
    """Return True if a touch should be journaled.

    A touch counts when it has a source or at least one click identifier.
    Referrer-only navigation does not.
    """
    if touch.source:
        return True
    return bool(click_ids and click_ids.has_any())


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        timestamp = value
    elif isinstance(value, str):
        timestamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp


