"""
HaloTrack Tracking - visitor sessions and the marketing touch journal.

Provides:
- Session / touchpoint schema with first-touch and last-touch snapshots
- Touch ingestion (consent, click ids, device parsing, journaling)
- The identify operation that attaches email/phone/customer id to a session
- Visitor analytics with time-gap visit collapsing

Usage:
    from halotrack.tracking import TouchRecorder, TouchRequest

    recorder = TouchRecorder(sessions, touchpoints, events, site_host="shop.example")
    result = recorder.record("acme", TouchRequest.from_url(url, headers=headers, cookies=cookies))
"""

from halotrack.tracking.identity import (
    identify_session,
    normalize_customer_id,
    normalize_email,
    normalize_phone,
)
from halotrack.tracking.journal import TouchpointJournal
from halotrack.tracking.recorder import TouchRecorder, TouchRequest, TouchResult
from halotrack.tracking.schema import (
    CLICK_ID_FIELDS,
    AnonymousEvent,
    ClickIds,
    ConsentStatus,
    DeviceData,
    Session,
    Touchpoint,
    TouchData,
    TrackedEvent,
    has_marketing_signal,
)
from halotrack.tracking.store import EventStore, SessionStore, TouchpointStore
from halotrack.tracking.visitors import VisitorStats, collapse_visits, visitor_analytics

__all__ = [
    # Schema
    "Session",
    "Touchpoint",
    "TouchData",
    "ClickIds",
    "DeviceData",
    "ConsentStatus",
    "TrackedEvent",
    "AnonymousEvent",
    "CLICK_ID_FIELDS",
    "has_marketing_signal",
    # Stores
    "SessionStore",
    "TouchpointStore",
    "EventStore",
    # Ingestion
    "TouchRecorder",
    "TouchRequest",
    "TouchResult",
    "TouchpointJournal",
    # Identity
    "identify_session",
    "normalize_email",
    "normalize_phone",
    "normalize_customer_id",
    # Analytics
    "VisitorStats",
    "collapse_visits",
    "visitor_analytics",
]
