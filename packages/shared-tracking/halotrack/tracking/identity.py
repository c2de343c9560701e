"""Identity normalization and the identify operation.

Email and phone values are normalized the same way when they are attached to a
session and when a conversion is matched against sessions, so both sides of
the comparison agree.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from halotrack.tracking.store import SessionStore

logger = logging.getLogger(__name__)


def normalize_email(email: Any) -> str | None:
    """Lower-case and trim an email. Empty values become None."""
    if not isinstance(email, str):
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_phone(phone: Any) -> str | None:
    """Keep only the digits of a phone number. Empty values become None.

    Examples:
        >>> normalize_phone("+420 777-123-456")
        '420777123456'
        >>> normalize_phone("n/a") is None
        True
    """
    if phone is None:
        return None
    digits = re.sub(r"\D", "", str(phone))
    return digits or None


def normalize_customer_id(customer_id: Any) -> str | None:
    """Stringify a platform customer id. Empty values become None."""
    if customer_id is None:
        return None
    value = str(customer_id).strip()
    return value or None


def identify_session(
    store: SessionStore,
    client_id: str,
    session_id: str,
    email: str | None = None,
    phone: str | None = None,
    customer_id: str | None = None,
) -> bool:
    """Attach identity fields to an existing session.

    Args:
        store: Session store.
        client_id: Tenant identifier.
        session_id: Session to identify.
        email: Email address (normalized before storing).
        phone: Phone number (digits only before storing).
        customer_id: Platform customer id, stored as the session's external_id.

    Returns:
        True if the session was updated, False if it does not exist.

    Raises:
        ValueError: If no identity field was provided.
    """
    changes: dict[str, Any] = {}
    if normalized_email := normalize_email(email):
        changes["email"] = normalized_email
    if normalized_phone := normalize_phone(phone):
        changes["phone"] = normalized_phone
    if external_id := normalize_customer_id(customer_id):
        changes["external_id"] = external_id

    if not changes:
        raise ValueError("No identity data provided")

    changes["updated_at"] = datetime.now(UTC)
    updated = store.update(client_id, session_id, changes)
    if updated:
        logger.info(f"Identified session {session_id} with {sorted(k for k in changes if k != 'updated_at')}")
    else:
        logger.warning(f"Identify called for unknown session {session_id}")
    return updated
