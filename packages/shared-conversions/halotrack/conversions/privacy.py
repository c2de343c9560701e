"""Right-to-erasure handling for a visitor's personal data."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from halotrack.conversions.store import ConversionStore
from halotrack.tracking.identity import normalize_email
from halotrack.tracking.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ErasureResult:
    """Counts of records touched by an erasure request."""

    email: str
    sessions_deleted: int = 0
    conversions_anonymized: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "sessions_deleted": self.sessions_deleted,
            "conversions_anonymized": self.conversions_anonymized,
        }


def erase_customer_data(
    sessions: SessionStore,
    conversions: ConversionStore,
    client_id: str,
    email: str,
) -> ErasureResult:
    """
    Delete a person's sessions and anonymize their conversions.

    Conversions are kept for revenue totals but lose their contact fields
    (email, phone, and for leads name, company and message). Their
    attribution snapshot is replaced with a deletion marker.

    Raises:
        ValueError: If the email is empty.
    """
    normalized = normalize_email(email)
    if normalized is None:
        raise ValueError("Email required")

    marker = {"deleted": True, "deletion_date": datetime.now(UTC).isoformat()}
    result = ErasureResult(email=normalized)
    result.sessions_deleted = sessions.delete_by_email(client_id, normalized)
    result.conversions_anonymized = conversions.anonymize_by_email(client_id, normalized, marker)

    # Counts only, the address itself is not logged
    logger.info(
        f"Erasure for client {client_id}: {result.sessions_deleted} sessions deleted, "
        f"{result.conversions_anonymized} conversions anonymized"
    )
    return result
