"""Shared pytest fixtures for HaloTrack packages."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from halotrack.conversions.schema import Conversion, ConversionType, LeadStatus
from halotrack.conversions.spend import AdSpend, spend_changes
from halotrack.tracking.schema import (
    AnonymousEvent,
    ClickIds,
    ConsentStatus,
    Session,
    Touchpoint,
    TouchData,
    TrackedEvent,
)


class InMemorySessionStore:
    """Dict-backed SessionStore."""

    def __init__(self):
        self.sessions: dict[tuple[str, str], Session] = {}

    def get(self, client_id: str, session_id: str) -> Session | None:
        return self.sessions.get((client_id, session_id))

    def _latest(self, client_id: str, attr: str, value: str) -> Session | None:
        matches = [
            s for (cid, _), s in self.sessions.items() if cid == client_id and getattr(s, attr) == value
        ]
        return max(matches, key=lambda s: s.updated_at) if matches else None

    def find_by_email(self, client_id: str, email: str) -> Session | None:
        return self._latest(client_id, "email", email)

    def find_by_phone(self, client_id: str, phone: str) -> Session | None:
        return self._latest(client_id, "phone", phone)

    def find_by_external_id(self, client_id: str, external_id: str) -> Session | None:
        return self._latest(client_id, "external_id", external_id)

    def list_by_ids(self, client_id: str, session_ids: Sequence[str]) -> list[Session]:
        return [self.sessions[(client_id, sid)] for sid in session_ids if (client_id, sid) in self.sessions]

    def insert(self, session: Session) -> None:
        self.sessions[(session.client_id, session.session_id)] = session

    def update(self, client_id: str, session_id: str, changes: dict[str, Any]) -> bool:
        session = self.get(client_id, session_id)
        if session is None:
            return False
        for key, value in changes.items():
            setattr(session, key, value)
        return True

    def delete_by_email(self, client_id: str, email: str) -> int:
        keys = [k for k, s in self.sessions.items() if k[0] == client_id and s.email == email]
        for key in keys:
            del self.sessions[key]
        return len(keys)


class InMemoryTouchpointStore:
    """List-backed TouchpointStore."""

    def __init__(self):
        self.touchpoints: list[Touchpoint] = []

    def count_for_session(self, client_id: str, session_id: str) -> int:
        return sum(1 for t in self.touchpoints if t.client_id == client_id and t.session_id == session_id)

    def append(self, touchpoint: Touchpoint) -> None:
        self.touchpoints.append(touchpoint)

    def list_by_session_ids(self, client_id: str, session_ids: Sequence[str]) -> list[Touchpoint]:
        wanted = set(session_ids)
        matches = [t for t in self.touchpoints if t.client_id == client_id and t.session_id in wanted]
        return sorted(matches, key=lambda t: t.timestamp)


class InMemoryEventStore:
    """List-backed EventStore."""

    def __init__(self):
        self.events: list[TrackedEvent] = []
        self.anonymous: list[AnonymousEvent] = []

    def insert_event(self, event: TrackedEvent) -> None:
        self.events.append(event)

    def insert_anonymous_event(self, event: AnonymousEvent) -> None:
        self.anonymous.append(event)

    def list_page_views(self, client_id: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        return [
            {"session_id": e.session_id, "created_at": e.created_at}
            for e in sorted(self.events, key=lambda e: e.created_at)
            if e.client_id == client_id and e.event_name == "page_view" and start <= e.created_at <= end
        ]


class InMemoryConversionStore:
    """Dict-backed ConversionStore keyed by (client_id, external_id, platform)."""

    KEEP_ON_UPSERT = ("conversion_id", "status", "deal_value", "sent_to_facebook", "sent_to_google")

    def __init__(self):
        self.conversions: dict[tuple[str, str, str], Conversion] = {}

    @staticmethod
    def _key(conversion: Conversion) -> tuple[str, str, str]:
        return (conversion.client_id, conversion.external_id, conversion.platform)

    def upsert(self, conversion: Conversion) -> None:
        existing = self.conversions.get(self._key(conversion))
        if existing is not None:
            for attr in self.KEEP_ON_UPSERT:
                setattr(conversion, attr, getattr(existing, attr))
        self.conversions[self._key(conversion)] = conversion

    def mark_forwarded(self, conversion: Conversion, facebook: bool | None = None, google: bool | None = None) -> None:
        stored = self.conversions[self._key(conversion)]
        if facebook is not None:
            stored.sent_to_facebook = facebook
        if google is not None:
            stored.sent_to_google = google

    def update_status(
        self,
        client_id: str,
        external_id: str,
        platform: str,
        status: LeadStatus,
        deal_value: float | None = None,
    ) -> bool:
        stored = self.conversions.get((client_id, external_id, platform))
        if stored is None:
            return False
        stored.status = LeadStatus(status)
        if deal_value is not None:
            stored.deal_value = deal_value
        return True

    def list_in_range(
        self,
        client_id: str,
        start: datetime,
        end: datetime,
        conversion_type: ConversionType | None = None,
    ) -> list[Conversion]:
        matches = [
            c
            for c in self.conversions.values()
            if c.client_id == client_id
            and start <= c.created_at <= end
            and (conversion_type is None or c.conversion_type == conversion_type)
        ]
        return sorted(matches, key=lambda c: c.created_at, reverse=True)

    def anonymize_by_email(self, client_id: str, email: str, attribution_data: dict[str, Any]) -> int:
        count = 0
        for conversion in self.conversions.values():
            if conversion.client_id != client_id or conversion.email != email:
                continue
            conversion.email = None
            conversion.phone = None
            if conversion.conversion_type == ConversionType.LEAD:
                conversion.name = None
                conversion.company = None
                conversion.message = None
            conversion.attribution_data = dict(attribution_data)
            count += 1
        return count



class InMemoryAdSpendStore:
    """Dict-backed AdSpendStore keyed like the ad_spend MERGE."""

    def __init__(self):
        self.entries: dict[tuple, AdSpend] = {}

    def upsert_many(self, entries: list[AdSpend]) -> int:
        for entry in entries:
            existing = self.entries.get(entry.key)
            if existing is not None:
                entry.spend_id = existing.spend_id
                entry.created_at = existing.created_at
            self.entries[entry.key] = entry
        return len(entries)

    def list_in_range(self, client_id: str, start: date | None = None, end: date | None = None) -> list[AdSpend]:
        matches = [
            e
            for e in self.entries.values()
            if e.client_id == client_id and (start is None or e.date >= start) and (end is None or e.date <= end)
        ]
        return sorted(matches, key=lambda e: e.date, reverse=True)

    def _find(self, client_id: str, spend_id: str) -> AdSpend | None:
        for entry in self.entries.values():
            if entry.client_id == client_id and str(entry.spend_id) == str(spend_id):
                return entry
        return None

    def update(self, client_id: str, spend_id: str, changes: dict[str, Any]) -> bool:
        changes = spend_changes(changes)
        entry = self._find(client_id, spend_id)
        if entry is None:
            return False
        del self.entries[entry.key]
        updated = replace(entry, **changes, updated_at=datetime.now(UTC))
        self.entries[updated.key] = updated
        return True

    def delete(self, client_id: str, spend_id: str) -> bool:
        entry = self._find(client_id, spend_id)
        if entry is None:
            return False
        del self.entries[entry.key]
        return True


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def touchpoint_store():
    return InMemoryTouchpointStore()


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def conversion_store():
    return InMemoryConversionStore()


@pytest.fixture
def spend_store():
    return InMemoryAdSpendStore()


@pytest.fixture
def make_session():
    """Factory for sessions with a first and last touch."""

    def _make(
        session_id: str = "sess-1",
        client_id: str = "acme",
        source: str | None = "google",
        medium: str | None = "cpc",
        created_at: datetime | None = None,
        **kwargs: Any,
    ) -> Session:
        created_at = created_at or datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
        touch = TouchData(source=source, medium=medium, landing="/", timestamp=created_at)
        kwargs.setdefault("consent_status", ConsentStatus.GRANTED)
        kwargs.setdefault("click_ids", ClickIds())
        return Session(
            client_id=client_id,
            session_id=session_id,
            first_touch=touch,
            last_touch=kwargs.pop("last_touch", touch),
            created_at=created_at,
            updated_at=kwargs.pop("updated_at", created_at),
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_bigquery_client():
    """Mock google.cloud.bigquery.Client for testing."""
    with patch("google.cloud.bigquery.Client") as mock:
        client = MagicMock()
        mock.return_value = client
        yield client


@pytest.fixture
def woocommerce_order():
    """WooCommerce order webhook body."""
    return {
        "id": 1042,
        "total": "1250.00",
        "total_tax": "216.94",
        "shipping_total": "99.00",
        "currency": "CZK",
        "date_created": "2025-01-15T10:30:00",
        "customer_id": 77,
        "billing": {"email": " Jane@Example.com ", "phone": "+420 777 123 456"},
        "line_items": [
            {"product_id": 11, "name": "Espresso beans", "price": "575.50", "quantity": 2},
        ],
        "meta_data": [{"key": "_halo_session", "value": "sess-1"}],
    }


@pytest.fixture
def shopify_order():
    """Shopify order webhook body."""
    return {
        "id": 5001,
        "order_number": 1001,
        "total_price": "89.90",
        "subtotal_price": "79.90",
        "total_tax": "10.00",
        "currency": "EUR",
        "created_at": "2025-01-16T08:00:00Z",
        "email": "buyer@example.com",
        "customer": {"id": 9001, "phone": "+1 (555) 010-2000"},
        "line_items": [{"product_id": 42, "title": "Grinder", "price": "79.90", "quantity": 1}],
        "note_attributes": [{"name": "halo_session_id", "value": "sess-2"}],
    }


@pytest.fixture
def lead_payload():
    """Website contact form body."""
    return {
        "lead_id": "L-100",
        "email": "lead@example.com",
        "phone": "777 123 456",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "company": "Analytical Engines",
        "message": "Please call me",
        "session_id": "sess-1",
        "consent_given": True,
        "created_at": "2025-01-20T09:00:00Z",
    }
