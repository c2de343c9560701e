"""
Attribution reporting over a date range.

Pipeline reports reload each conversion's touchpoint journey and re-run the
credit allocator with the requested model. Revenue and lead summaries read
only the attribution snapshots stored at ingestion time, and join the
period's ad spend onto each first-touch channel.

No report fails on empty data; each returns zeroed structures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import Any

from halotrack.conversions.attribution import DEFAULT_HALF_LIFE_DAYS, channel_key
from halotrack.conversions.pipeline import PipelineReport, aggregate_pipeline
from halotrack.conversions.schema import AttributionModel, Conversion, ConversionType, LeadStatus, MatchType
from halotrack.conversions.spend import spend_by_channel
from halotrack.conversions.store import AdSpendStore, ConversionStore
from halotrack.tracking.schema import Touchpoint
from halotrack.tracking.store import TouchpointStore

logger = logging.getLogger(__name__)

NO_TOP_SOURCE = "N/A"
UNKNOWN_FORM_TYPE = "unknown"


@dataclass
class ReportRequest:
    """Reporting input: client, inclusive date range and model."""

    client_id: str
    start_date: date | datetime
    end_date: date | datetime
    model: AttributionModel | str | None = None
    conversion_type: ConversionType | None = None

    @property
    def start(self) -> datetime:
        return _as_datetime(self.start_date, time.min)

    @property
    def end(self) -> datetime:
        """End of the range; a plain date covers the whole day."""
        return _as_datetime(self.end_date, time.max)


@dataclass
class ChannelRevenue:
    """Revenue and spend of one first-touch channel."""

    source: str
    conversions: int = 0
    revenue: float = 0.0
    spend: float = 0.0

    @property
    def cpa(self) -> float:
        """Cost per acquisition."""
        return self.spend / self.conversions if self.conversions else 0.0

    @property
    def roas(self) -> float:
        """Return on ad spend."""
        return self.revenue / self.spend if self.spend else 0.0

    @property
    def profit(self) -> float:
        return self.revenue - self.spend

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "value": self.revenue,
            "conversions": self.conversions,
            "spend": self.spend,
            "cpa": round(self.cpa, 2),
            "roas": round(self.roas, 2),
            "profit": round(self.profit, 2),
        }


@dataclass
class RevenueSummary:
    """Headline revenue metrics from stored attribution."""

    total_value: float = 0.0
    conversion_count: int = 0
    attributed_count: int = 0
    avg_days_to_convert: float | None = None
    total_spend: float = 0.0
    channels: dict[str, ChannelRevenue] = field(default_factory=dict)

    @property
    def attribution_rate(self) -> float:
        """Share of conversions resolved to a session, in percent."""
        return self.attributed_count / self.conversion_count * 100 if self.conversion_count else 0.0

    @property
    def revenue_by_source(self) -> dict[str, float]:
        return {source: row.revenue for source, row in self.channels.items()}

    @property
    def roas(self) -> float:
        return self.total_value / self.total_spend if self.total_spend else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_value": self.total_value,
            "conversion_count": self.conversion_count,
            "attribution_rate": self.attribution_rate,
            "avg_days_to_convert": self.avg_days_to_convert,
            "total_spend": self.total_spend,
            "roas": round(self.roas, 2),
            "revenue_by_source": [
                row.to_dict() for row in sorted(self.channels.values(), key=lambda r: r.revenue, reverse=True)
            ],
        }


@dataclass
class LeadGroup:
    """Leads sharing a form type or a first-touch channel."""

    name: str
    count: int = 0
    value: float = 0.0
    spend: float = 0.0

    @property
    def cpl(self) -> float:
        """Cost per lead."""
        return self.spend / self.count if self.count else 0.0

    def to_dict(self, label: str = "source") -> dict[str, Any]:
        data: dict[str, Any] = {label: self.name, "count": self.count, "value": self.value}
        if label == "source":
            data["spend"] = self.spend
            data["cpl"] = round(self.cpl, 2)
        return data


@dataclass
class LeadsSummary:
    """Lead-generation metrics: volume, cost per lead and where leads come from."""

    total_leads: int = 0
    won_leads: int = 0
    total_spend: float = 0.0
    by_form_type: list[LeadGroup] = field(default_factory=list)
    by_source: list[LeadGroup] = field(default_factory=list)

    @property
    def cost_per_lead(self) -> float:
        return self.total_spend / self.total_leads if self.total_leads else 0.0

    @property
    def conversion_rate(self) -> float:
        """Share of leads won, in percent."""
        return self.won_leads / self.total_leads * 100 if self.total_leads else 0.0

    @property
    def top_source(self) -> str:
        return self.by_source[0].name if self.by_source else NO_TOP_SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_leads": self.total_leads,
            "conversion_rate": round(self.conversion_rate, 1),
            "total_spend": self.total_spend,
            "cost_per_lead": round(self.cost_per_lead, 2),
            "top_source": self.top_source,
            "leads_by_form_type": [group.to_dict("form_type") for group in self.by_form_type],
            "leads_by_source": [group.to_dict() for group in self.by_source],
        }


class AttributionReporter:
    """
    Builds attribution reports from the conversion, touchpoint and spend stores.

    Without a spend store every spend figure is zero.

    Example:
        reporter = AttributionReporter(conversion_store, touchpoint_store, spend=spend_store)
        report = reporter.pipeline_report(
            ReportRequest("acme", date(2025, 1, 1), date(2025, 1, 31), "linear")
        )
    """

    def __init__(
        self,
        conversions: ConversionStore,
        touchpoints: TouchpointStore,
        default_model: AttributionModel = AttributionModel.LAST_TOUCH,
        half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
        spend: AdSpendStore | None = None,
    ):
        self.conversions = conversions
        self.touchpoints = touchpoints
        self.default_model = default_model
        self.half_life_days = half_life_days
        self.spend = spend

    def pipeline_report(self, request: ReportRequest) -> PipelineReport:
        """Per-channel pipeline totals for the range under the requested model."""
        model = AttributionModel.parse(request.model or self.default_model)
        conversions = self._load(request)

        session_ids = sorted({c.session_id for c in conversions if c.session_id})
        journeys: dict[str, list[Touchpoint]] = {}
        if session_ids:
            for touchpoint in self.touchpoints.list_by_session_ids(request.client_id, session_ids):
                journeys.setdefault(touchpoint.session_id, []).append(touchpoint)

        logger.debug(
            f"Pipeline report for {request.client_id}: {len(conversions)} conversions, "
            f"{len(journeys)} journeys, model {model.value}"
        )
        return aggregate_pipeline(conversions, journeys, model, self.half_life_days)

    def revenue_summary(self, request: ReportRequest) -> RevenueSummary:
        """Total value, attribution rate, days to convert and first-touch revenue and ROAS by source."""
        return summarize_revenue(self._load(request), self._spend(request))

    def leads_summary(self, request: ReportRequest) -> LeadsSummary:
        """Lead counts by form type and first-touch source, with cost per lead."""
        leads = self.conversions.list_in_range(
            request.client_id,
            request.start,
            request.end,
            conversion_type=ConversionType.LEAD,
        )
        return summarize_leads(leads, self._spend(request))

    def _load(self, request: ReportRequest) -> list[Conversion]:
        return self.conversions.list_in_range(
            request.client_id,
            request.start,
            request.end,
            conversion_type=request.conversion_type,
        )

    def _spend(self, request: ReportRequest) -> dict[str, float]:
        if self.spend is None:
            return {}
        entries = self.spend.list_in_range(request.client_id, request.start.date(), request.end.date())
        return spend_by_channel(entries)


def summarize_revenue(conversions: list[Conversion], spend: dict[str, float] | None = None) -> RevenueSummary:
    """
    Summarize stored conversions; unattributed revenue lands on Direct / (none).

    Args:
        conversions: Conversions in the period
        spend: Spend keyed by lower-cased "source / medium", see
            `halotrack.conversions.spend.spend_by_channel`
    """
    spend = spend or {}
    summary = RevenueSummary(total_spend=float(sum(spend.values())))
    days: list[int] = []

    for conversion in conversions:
        summary.conversion_count += 1
        summary.total_value += conversion.value
        if conversion.match_type != MatchType.NONE:
            summary.attributed_count += 1
        if conversion.days_to_convert is not None:
            days.append(conversion.days_to_convert)

        source = _first_touch_channel(conversion)
        row = summary.channels.get(source)
        if row is None:
            row = summary.channels[source] = ChannelRevenue(source, spend=spend.get(source.lower(), 0.0))
        row.conversions += 1
        row.revenue += conversion.value

    if days:
        summary.avg_days_to_convert = sum(days) / len(days)
    return summary


def summarize_leads(leads: list[Conversion], spend: dict[str, float] | None = None) -> LeadsSummary:
    """Group leads by form type and by first-touch channel, both by count descending."""
    spend = spend or {}
    summary = LeadsSummary(total_leads=len(leads), total_spend=float(sum(spend.values())))
    form_types: dict[str, LeadGroup] = {}
    sources: dict[str, LeadGroup] = {}

    for lead in leads:
        value = lead.deal_value if lead.deal_value is not None else lead.value
        if lead.status == LeadStatus.WON:
            summary.won_leads += 1

        form_type = lead.form_type or UNKNOWN_FORM_TYPE
        group = form_types.setdefault(form_type, LeadGroup(form_type))
        group.count += 1
        group.value += value

        source = _first_touch_channel(lead)
        group = sources.setdefault(source, LeadGroup(source, spend=spend.get(source.lower(), 0.0)))
        group.count += 1
        group.value += value

    summary.by_form_type = sorted(form_types.values(), key=lambda g: g.count, reverse=True)
    summary.by_source = sorted(sources.values(), key=lambda g: g.count, reverse=True)
    return summary


def _first_touch_channel(conversion: Conversion) -> str:
    first_touch = (conversion.attribution_data or {}).get("first_touch") or {}
    return channel_key(first_touch.get("source"), first_touch.get("medium"))


def _as_datetime(value: date | datetime, default_time: time) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.combine(value, default_time, tzinfo=UTC)
