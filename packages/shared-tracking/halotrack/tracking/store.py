"""Storage interfaces consumed by the tracking and attribution engine.

The engine never talks to a database directly. It reads and writes through
these protocols; `halotrack.bigquery.stores` provides the BigQuery-backed
implementations.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from halotrack.tracking.schema import AnonymousEvent, Session, Touchpoint, TrackedEvent


class SessionStore(Protocol):
    """Read/write access to visitor sessions, partitioned by client."""

    def get(self, client_id: str, session_id: str) -> Session | None:
        """Exact lookup by session id."""
        ...

    def find_by_email(self, client_id: str, email: str) -> Session | None:
        """Most recently updated session carrying a normalized email."""
        ...

    def find_by_phone(self, client_id: str, phone: str) -> Session | None:
        """Most recently updated session carrying a digits-only phone."""
        ...

    def find_by_external_id(self, client_id: str, external_id: str) -> Session | None:
        """Most recently updated session carrying an identified customer id."""
        ...

    def list_by_ids(self, client_id: str, session_ids: Sequence[str]) -> list[Session]:
        """Sessions for the given ids; unknown ids are skipped."""
        ...

    def insert(self, session: Session) -> None: ...

    def update(self, client_id: str, session_id: str, changes: dict[str, Any]) -> bool:
        """Apply a partial update. Returns False if the session does not exist.

        Keys are Session attribute names; `last_touch` and `click_ids` take
        their dataclass values.
        """
        ...

    def delete_by_email(self, client_id: str, email: str) -> int:
        """Delete every session carrying the email. Returns the count."""
        ...


class TouchpointStore(Protocol):
    """Append-only touchpoint journal."""

    def count_for_session(self, client_id: str, session_id: str) -> int: ...

    def append(self, touchpoint: Touchpoint) -> None: ...

    def list_by_session_ids(
        self,
        client_id: str,
        session_ids: Sequence[str],
    ) -> list[Touchpoint]:
        """Touchpoints for the sessions, ordered by timestamp ascending."""
        ...


class EventStore(Protocol):
    """Tracked and anonymous events."""

    def insert_event(self, event: TrackedEvent) -> None: ...

    def insert_anonymous_event(self, event: AnonymousEvent) -> None: ...

    def list_page_views(
        self,
        client_id: str,
        start: Any,
        end: Any,
    ) -> list[dict[str, Any]]:
        """Page views in a time range as dicts with session_id and created_at."""
        ...
