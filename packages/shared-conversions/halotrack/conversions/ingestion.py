"""Conversion ingestion.

Coordinates the handling of one inbound lead or order:
1. Resolving the conversion to a visitor session
2. Snapshotting the session's attribution onto the conversion
3. Upserting the conversion
4. Forwarding it to the client's configured ad platforms

Steps 1-3 are all-or-nothing from the caller's point of view: any store
failure aborts with success=False and nothing half-attributed is written.
Forwarding runs after the conversion is stored and never undoes it; each
destination succeeds or fails on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from halotrack.conversions.identity import IdentityResolver
from halotrack.conversions.schema import Conversion, ConversionType, LeadStatus, MatchType
from halotrack.conversions.snapshot import build_attribution_snapshot, days_to_convert
from halotrack.conversions.store import ConversionStore
from halotrack.forwarding import ClientSettings, Destination, ForwardingResult, get_registry
from halotrack.tracking.schema import ConsentStatus, Session
from halotrack.tracking.store import SessionStore

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal error"


@dataclass
class IngestionResult:
    """Envelope returned for every ingested conversion."""

    success: bool
    attributed: bool = False
    match_type: MatchType = MatchType.NONE
    forwarded: dict[str, bool] = field(
        default_factory=lambda: {Destination.FACEBOOK.value: False, Destination.GOOGLE.value: False}
    )
    error: str | None = None
    conversion: Conversion | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "attributed": self.attributed,
            "match_type": self.match_type.value,
            "forwarded": dict(self.forwarded),
        }


def make_event_id(conversion: Conversion, now: datetime | None = None) -> str:
    """Deduplication id shared with browser pixel events."""
    ms = int((now or datetime.now(UTC)).timestamp() * 1000)
    if conversion.conversion_type == ConversionType.LEAD:
        return f"{conversion.client_id}_lead_{conversion.external_id}_{ms}"
    return f"{conversion.client_id}_{conversion.external_id}_{ms}"


class ConversionIngestor:
    """Resolves, stores and forwards conversions for one client.

    Example:
        ingestor = ConversionIngestor(session_store, conversion_store, settings)
        conversion = detect_order_normalizer(body, "acme").normalize(body)
        result = ingestor.ingest(conversion)
        return result.to_dict()
    """

    def __init__(
        self,
        sessions: SessionStore,
        conversions: ConversionStore,
        settings: ClientSettings | None = None,
        http_client: httpx.Client | None = None,
    ):
        """Initialize the ingestor.

        Args:
            sessions: Session store used for identity resolution.
            conversions: Conversion store.
            settings: The client's settings (forwarding credentials). Without
                settings nothing is forwarded.
            http_client: Optional shared HTTP client for forwarders.
        """
        self.resolver = IdentityResolver(sessions)
        self.conversions = conversions
        self.settings = settings or ClientSettings()
        self.http_client = http_client

    def ingest(self, conversion: Conversion) -> IngestionResult:
        """Attribute, store and forward one conversion."""
        try:
            session, match_type = self.resolver.resolve(conversion.client_id, conversion)

            conversion.match_type = match_type
            conversion.attribution_data = build_attribution_snapshot(session, match_type)
            conversion.days_to_convert = days_to_convert(session, conversion.created_at)
            conversion.session_id = session.session_id if session else None
            conversion.event_id = conversion.event_id or make_event_id(conversion)

            self.conversions.upsert(conversion)
        except Exception:
            logger.exception(
                f"Failed to ingest {conversion.conversion_type.value} {conversion.external_id} "
                f"for client {conversion.client_id}"
            )
            return IngestionResult(success=False, error=INTERNAL_ERROR)

        logger.info(
            f"Stored {conversion.conversion_type.value} {conversion.external_id} "
            f"for client {conversion.client_id} (match: {match_type.value})"
        )

        result = IngestionResult(
            success=True,
            attributed=match_type != MatchType.NONE,
            match_type=match_type,
            conversion=conversion,
        )
        if session is not None and self.should_forward(conversion, session):
            for forwarded in self.forward(conversion, session):
                result.forwarded[forwarded.destination.value] = forwarded.success
        return result

    def should_forward(self, conversion: Conversion, session: Session) -> bool:
        """Forward only for consenting visitors; leads also need form consent."""
        if session.consent_status == ConsentStatus.DENIED:
            return False
        if conversion.conversion_type == ConversionType.LEAD and not conversion.consent_given:
            return False
        return True

    def forward(self, conversion: Conversion, session: Session) -> list[ForwardingResult]:
        """Send to every configured destination and record the successes."""
        results = []
        for forwarder in get_registry().create_configured(self.settings, client=self.http_client):
            try:
                with forwarder:
                    outcome = forwarder.send(conversion, session)
            except Exception as e:
                logger.exception(f"Forwarding {conversion.external_id} to {forwarder.destination.value} failed")
                outcome = ForwardingResult(destination=forwarder.destination, success=False, error=str(e))
            results.append(outcome)

            if not outcome.success:
                continue
            try:
                self.conversions.mark_forwarded(
                    conversion,
                    facebook=True if outcome.destination == Destination.FACEBOOK else None,
                    google=True if outcome.destination == Destination.GOOGLE else None,
                )
            except Exception:
                logger.exception(
                    f"Forwarded {conversion.external_id} to {outcome.destination.value} "
                    f"but failed to record it"
                )
            if outcome.destination == Destination.FACEBOOK:
                conversion.sent_to_facebook = True
            else:
                conversion.sent_to_google = True
        return results

    def update_lead_status(
        self,
        client_id: str,
        external_id: str,
        status: LeadStatus | str,
        deal_value: float | None = None,
        platform: str = "form",
    ) -> bool:
        """Move a conversion through the sales pipeline.

        Args:
            client_id: Tenant identifier.
            external_id: Lead (or order) id.
            status: New status.
            deal_value: Closed deal value, recorded when given.
            platform: Lead source / order platform part of the key.

        Returns:
            True if the conversion exists and was updated.

        Raises:
            ValueError: If the status is unknown or the deal value is negative.
        """
        status = LeadStatus(status)
        if deal_value is not None and deal_value < 0:
            raise ValueError(f"deal_value must not be negative, got {deal_value}")

        updated = self.conversions.update_status(client_id, external_id, platform, status, deal_value)
        if updated:
            logger.info(f"Lead {external_id} moved to {status.value}")
        else:
            logger.warning(f"Status update for unknown conversion {external_id}")
        return updated
