"""
Pipeline aggregation - fold per-conversion credit into per-channel totals.

For each conversion the credit allocator yields a channel -> weight map. Every
weight is added to that channel's total credit; won conversions also add the
weight to won credit and weight * deal value to weighted value.

Aggregation is a sum over a set, so the order of the input conversions does
not change any channel's totals. Channels are sorted by weighted value,
highest first; ties keep first-seen order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from halotrack.conversions.attribution import DEFAULT_HALF_LIFE_DAYS, allocate_credit
from halotrack.conversions.schema import AttributionModel, Conversion, LeadStatus
from halotrack.tracking.schema import Touchpoint


@dataclass
class SourceCredit:
    """Aggregated credit for one channel."""

    source: str  # "source / medium"
    total_credit: float = 0.0
    won_credit: float = 0.0
    weighted_value: float = 0.0

    @property
    def win_rate(self) -> float:
        """Won credit as a percentage of total credit (0 when there is none)."""
        if self.total_credit == 0:
            return 0.0
        return self.won_credit / self.total_credit * 100

    def to_dict(self) -> dict[str, Any]:
        """Presentation shape: credits rounded to 2 decimals."""
        return {
            "source": self.source,
            "total_credit": round(self.total_credit, 2),
            "won_credit": round(self.won_credit, 2),
            "weighted_value": self.weighted_value,
            "win_rate": self.win_rate,
        }


@dataclass
class PipelineReport:
    """Per-channel pipeline totals for a set of conversions."""

    model: AttributionModel
    by_source: list[SourceCredit] = field(default_factory=list)
    total_conversions: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)

    @property
    def won(self) -> int:
        return self.status_counts.get(LeadStatus.WON.value, 0)

    @property
    def win_rate(self) -> float:
        return self.won / self.total_conversions * 100 if self.total_conversions else 0.0

    def get(self, source: str) -> SourceCredit | None:
        """Look up a channel's totals by its "source / medium" key."""
        return next((s for s in self.by_source if s.source == source), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model.value,
            "total_conversions": self.total_conversions,
            "status_counts": dict(self.status_counts),
            "win_rate": self.win_rate,
            "by_source": [s.to_dict() for s in self.by_source],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Export per-channel rows, e.g. for a sheet or notebook."""
        columns = ["source", "total_credit", "won_credit", "weighted_value", "win_rate"]
        return pd.DataFrame([s.to_dict() for s in self.by_source], columns=columns)


def aggregate_pipeline(
    conversions: Iterable[Conversion],
    touchpoints_by_session: Mapping[str, Sequence[Touchpoint]] | None = None,
    model: AttributionModel | str = AttributionModel.LAST_TOUCH,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
) -> PipelineReport:
    """
    Aggregate credit and deal outcomes per channel.

    Args:
        conversions: Conversions in the reporting window
        touchpoints_by_session: Journaled touchpoints keyed by session id
        model: Attribution model applied to every conversion
        half_life_days: Half-life for the time-decay model

    Returns:
        PipelineReport with channels sorted by weighted value descending

    Example:
        report = aggregate_pipeline(conversions, journeys, AttributionModel.LINEAR)
        for row in report.by_source:
            print(row.source, row.total_credit, row.weighted_value)
    """
    model = AttributionModel.parse(model)
    touchpoints_by_session = touchpoints_by_session or {}
    channels: dict[str, SourceCredit] = {}
    status_counts: dict[str, int] = {}
    total = 0

    for conversion in conversions:
        total += 1
        status = conversion.status.value if conversion.status else LeadStatus.NEW.value
        status_counts[status] = status_counts.get(status, 0) + 1

        journey = touchpoints_by_session.get(conversion.session_id, ()) if conversion.session_id else ()
        credit = allocate_credit(conversion, journey, model, half_life_days)

        for channel, weight in credit.items():
            row = channels.setdefault(channel, SourceCredit(source=channel))
            row.total_credit += weight
            if conversion.is_won:
                row.won_credit += weight
                row.weighted_value += weight * conversion.effective_deal_value

    # sorted() is stable, ties keep first-seen order
    by_source = sorted(channels.values(), key=lambda s: s.weighted_value, reverse=True)

    return PipelineReport(
        model=model,
        by_source=by_source,
        total_conversions=total,
        status_counts=status_counts,
    )
