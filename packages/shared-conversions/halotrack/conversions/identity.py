"""
Identity resolution - find the visitor session behind a conversion.

Signals are tried in a fixed priority order and the first match wins:

1. session id (exact, within the client)
2. email (lower-cased and trimmed)
3. phone (digits only)
4. customer id, against the session's identified external_id

Email, phone and customer id lookups return the most recently updated session
when several carry the same value. A conversion that matches nothing is
unattributed; that is an expected outcome, not an error.
"""

from __future__ import annotations

import logging
from typing import Protocol

from halotrack.conversions.schema import MatchType
from halotrack.tracking.identity import normalize_customer_id, normalize_email, normalize_phone
from halotrack.tracking.schema import Session
from halotrack.tracking.store import SessionStore

logger = logging.getLogger(__name__)


class IdentitySignals(Protocol):
    """Anything carrying the optional identity fields of a conversion."""

    session_id: str | None
    email: str | None
    phone: str | None
    customer_id: str | None


class IdentityResolver:
    """
    Resolve conversions to sessions.

    Example:
        resolver = IdentityResolver(session_store)
        session, match_type = resolver.resolve("acme", conversion)
        if match_type == MatchType.NONE:
            ...  # stored unattributed
    """

    def __init__(self, sessions: SessionStore):
        self.sessions = sessions

    def resolve(self, client_id: str, event: IdentitySignals) -> tuple[Session | None, MatchType]:
        """
        Find the best matching session for an event.

        Lookups run strictly in priority order; a later signal is only tried
        once every earlier one has failed to match.

        Args:
            client_id: Tenant identifier
            event: Conversion (or any object) with session_id/email/phone/customer_id

        Returns:
            (session, match_type), or (None, MatchType.NONE)

        Raises:
            Whatever the session store raises. A failed lookup is not treated
            as "no match".
        """
        if event.session_id:
            session = self.sessions.get(client_id, event.session_id)
            if session is not None:
                return session, MatchType.SESSION

        if email := normalize_email(event.email):
            session = self.sessions.find_by_email(client_id, email)
            if session is not None:
                return session, MatchType.EMAIL

        if phone := normalize_phone(event.phone):
            session = self.sessions.find_by_phone(client_id, phone)
            if session is not None:
                return session, MatchType.PHONE

        if customer_id := normalize_customer_id(event.customer_id):
            session = self.sessions.find_by_external_id(client_id, customer_id)
            if session is not None:
                return session, MatchType.CUSTOMER_ID

        logger.debug(f"No session matched for client {client_id}")
        return None, MatchType.NONE
