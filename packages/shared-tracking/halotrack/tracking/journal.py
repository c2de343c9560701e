"""Touchpoint journal writer.

Every marketing touch observed for a session is appended to the journal so the
full journey can be replayed by the multi-touch credit allocator.

Touchpoint numbers are computed as "existing count + 1". That is a
read-then-write against the store, so two concurrent touches for the same
session can receive the same number. Numbers are advisory ordering only;
everything that affects credit orders touchpoints by timestamp.
"""

from __future__ import annotations

import logging

from halotrack.tracking.schema import ClickIds, Touchpoint, TouchData, has_marketing_signal
from halotrack.tracking.store import TouchpointStore

logger = logging.getLogger(__name__)


class TouchpointJournal:
    """Appends marketing touches to the touchpoint store.

    Example:
        journal = TouchpointJournal(store)
        number = journal.record_touch("acme", "sess-1", touch, click_ids)
        if number is None:
            ...  # organic navigation, nothing journaled
    """

    def __init__(self, store: TouchpointStore):
        self.store = store

    def record_touch(
        self,
        client_id: str,
        session_id: str,
        touch: TouchData,
        click_ids: ClickIds | None = None,
    ) -> int | None:
        """Journal a touch if it carries marketing signal.

        Args:
            client_id: Tenant identifier.
            session_id: Session the touch belongs to.
            touch: UTM/referrer/landing data of the touch.
            click_ids: Click identifiers that arrived with the touch.

        Returns:
            The assigned touchpoint number, or None if the touch was skipped.
        """
        if not has_marketing_signal(touch, click_ids):
            return None

        number = self.store.count_for_session(client_id, session_id) + 1
        touchpoint = Touchpoint.from_touch(client_id, session_id, number, touch, click_ids)
        self.store.append(touchpoint)

        logger.debug(f"Journaled touchpoint {number} for session {session_id}")
        return number
