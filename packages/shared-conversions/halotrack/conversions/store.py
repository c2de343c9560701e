"""Storage interfaces for conversions and ad spend.

Implemented by `halotrack.bigquery.stores.BigQueryConversionStore` and
`BigQueryAdSpendStore`; tests use in-memory fakes.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Protocol

from halotrack.conversions.schema import Conversion, ConversionType, LeadStatus
from halotrack.conversions.spend import AdSpend


class ConversionStore(Protocol):
    """Read/write access to conversions, partitioned by client."""

    def upsert(self, conversion: Conversion) -> None:
        """Insert or replace by (client_id, external_id, platform)."""
        ...

    def mark_forwarded(
        self,
        conversion: Conversion,
        facebook: bool | None = None,
        google: bool | None = None,
    ) -> None:
        """Set the per-destination forwarding flags that are not None."""
        ...

    def update_status(
        self,
        client_id: str,
        external_id: str,
        platform: str,
        status: LeadStatus,
        deal_value: float | None = None,
    ) -> bool:
        """Move a conversion through the pipeline. Returns False if not found."""
        ...

    def list_in_range(
        self,
        client_id: str,
        start: datetime,
        end: datetime,
        conversion_type: ConversionType | None = None,
    ) -> list[Conversion]:
        """Conversions created in [start, end], newest first."""
        ...

    def anonymize_by_email(
        self,
        client_id: str,
        email: str,
        attribution_data: dict[str, Any],
    ) -> int:
        """Clear contact fields on every conversion with the email.

        The attribution snapshot is replaced with `attribution_data`.
        Returns the number of conversions changed.
        """
        ...


class AdSpendStore(Protocol):
    """Read/write access to daily ad spend, partitioned by client."""

    def upsert_many(self, entries: list[AdSpend]) -> int:
        """Insert or replace by (client_id, date, source, medium, campaign).

        Returns the number of entries written.
        """
        ...

    def list_in_range(
        self,
        client_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[AdSpend]:
        """Entries dated in [start, end] (either bound optional), newest date first."""
        ...

    def update(self, client_id: str, spend_id: str, changes: dict[str, Any]) -> bool:
        """Change fields of one entry. Returns False if not found."""
        ...

    def delete(self, client_id: str, spend_id: str) -> bool:
        """Remove one entry. Returns False if not found."""
        ...
