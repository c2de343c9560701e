"""
Ad spend - daily marketing cost per channel.

Spend is entered per (date, source, medium, campaign) by hand or from a CSV
export of an ad platform, and is upserted on that key: re-importing a day
replaces its figure instead of adding to it.

Reports join spend onto conversions by channel. The join is
case-insensitive, so spend entered as "Google / CPC" is matched with
touches recorded as "google / cpc".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID, uuid4

import pandas as pd

from halotrack.conversions.attribution import channel_key
from halotrack.conversions.exceptions import NormalizationError
from halotrack.tracking.schema import parse_timestamp

DEFAULT_SPEND_CURRENCY = "CZK"

# Fields a stored entry may change after import
UPDATABLE_FIELDS = frozenset({"date", "source", "medium", "campaign", "spend", "currency"})


@dataclass
class AdSpend:
    """
    One day of spend on one channel (optionally one campaign).

    Example:
        entry = AdSpend(
            client_id="acme",
            date=date(2025, 1, 15),
            source="google",
            medium="cpc",
            campaign="brand",
            spend=1200.0,
        )
    """

    client_id: str
    date: date
    source: str
    medium: str
    spend: float
    campaign: str | None = None
    currency: str = DEFAULT_SPEND_CURRENCY
    spend_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        self.date = parse_spend_date(self.date)
        self.source = (self.source or "").strip()
        self.medium = (self.medium or "").strip()
        self.campaign = (self.campaign or "").strip() or None
        self.currency = self.currency or DEFAULT_SPEND_CURRENCY
        self.created_at = parse_timestamp(self.created_at) or datetime.now(UTC)
        self.updated_at = parse_timestamp(self.updated_at) or self.created_at
        if not self.source or not self.medium:
            raise ValueError("Ad spend needs a source and a medium")
        if self.spend < 0:
            raise ValueError(f"spend must not be negative, got {self.spend}")

    @property
    def key(self) -> tuple[str, date, str, str, str]:
        """Upsert key; a missing campaign is stored as the empty campaign."""
        return (self.client_id, self.date, self.source, self.medium, self.campaign or "")

    @property
    def channel(self) -> str:
        return channel_key(self.source, self.medium)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spend_id": str(self.spend_id),
            "client_id": self.client_id,
            "date": self.date.isoformat(),
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
            "spend": self.spend,
            "currency": self.currency,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdSpend:
        """Rebuild a stored entry.

        Raises:
            ValueError: If a required field is missing or invalid.
        """
        now = datetime.now(UTC)
        return cls(
            client_id=data["client_id"],
            date=data["date"],
            source=data.get("source") or "",
            medium=data.get("medium") or "",
            spend=float(data.get("spend") or 0.0),
            campaign=data.get("campaign"),
            currency=data.get("currency") or DEFAULT_SPEND_CURRENCY,
            spend_id=UUID(str(data["spend_id"])) if data.get("spend_id") else uuid4(),
            created_at=data.get("created_at") or now,
            updated_at=data.get("updated_at") or now,
        )


@dataclass
class SourceSpend:
    """Total spend of one source / medium over a range."""

    source: str
    medium: str
    total_spend: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "medium": self.medium, "total_spend": round(self.total_spend, 2)}


def parse_spend_date(value: Any) -> date:
    """Accept a date, a datetime or an ISO "YYYY-MM-DD" string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Invalid spend date: {value!r}")


def parse_spend_entries(
    client_id: str,
    data: pd.DataFrame | list[dict[str, Any]],
    default_currency: str = DEFAULT_SPEND_CURRENCY,
) -> list[AdSpend]:
    """
    Build AdSpend entries from manual input or a CSV export.

    Args:
        client_id: Tenant the spend belongs to
        data: Rows with date, source, medium, spend and optional campaign
            and currency
        default_currency: Currency for rows without one

    Raises:
        NormalizationError: Naming the first row that cannot be parsed.
    """
    if isinstance(data, pd.DataFrame):
        records = [
            {k: v for k, v in row.items() if not (pd.api.types.is_scalar(v) and pd.isna(v))}
            for row in data.to_dict(orient="records")
        ]
    else:
        records = list(data)

    entries = []
    for index, record in enumerate(records):
        try:
            entries.append(
                AdSpend(
                    client_id=client_id,
                    date=record.get("date"),
                    source=str(record.get("source") or ""),
                    medium=str(record.get("medium") or ""),
                    spend=float(record.get("spend")),
                    campaign=record.get("campaign"),
                    currency=record.get("currency") or default_currency,
                )
            )
        except (TypeError, ValueError) as e:
            raise NormalizationError(f"Invalid ad spend row {index}: {e}") from e
    return entries


def spend_by_source(entries: list[AdSpend]) -> list[SourceSpend]:
    """Aggregate spend per source / medium, largest first."""
    totals: dict[tuple[str, str], SourceSpend] = {}
    for entry in entries:
        row = totals.setdefault((entry.source, entry.medium), SourceSpend(entry.source, entry.medium))
        row.total_spend += entry.spend
    return sorted(totals.values(), key=lambda row: row.total_spend, reverse=True)


def spend_by_channel(entries: list[AdSpend]) -> dict[str, float]:
    """Total spend keyed by lower-cased "source / medium", for joining onto conversions."""
    totals: dict[str, float] = {}
    for entry in entries:
        key = entry.channel.lower()
        totals[key] = totals.get(key, 0.0) + entry.spend
    return totals


def spend_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalize a partial update of a stored entry.

    Raises:
        ValueError: For unknown fields, a blank source or medium, or a
            negative or non-numeric spend.
    """
    unknown = sorted(set(changes) - UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Ad spend fields cannot be updated: {', '.join(unknown)}")

    normalized = dict(changes)
    if "date" in normalized:
        normalized["date"] = parse_spend_date(normalized["date"])
    if "spend" in normalized:
        normalized["spend"] = float(normalized["spend"])
        if normalized["spend"] < 0:
            raise ValueError(f"spend must not be negative, got {normalized['spend']}")
    for name in ("source", "medium"):
        if name in normalized:
            normalized[name] = str(normalized[name] or "").strip()
            if not normalized[name]:
                raise ValueError(f"{name} must not be empty")
    if "campaign" in normalized:
        normalized["campaign"] = (normalized["campaign"] or "").strip() or None
    if "currency" in normalized:
        normalized["currency"] = normalized["currency"] or DEFAULT_SPEND_CURRENCY
    return normalized
