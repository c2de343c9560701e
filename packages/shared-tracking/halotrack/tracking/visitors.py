"""
Visitor analytics over tracked page views.

One definition of a unique visitor is used everywhere: the stable visitor id
(the session id stored in the _halo cookie). Page views of one visitor are
collapsed into visits; a new visit starts after `visit_gap_minutes` of
inactivity. Bounce rate is the share of visits with a single page view.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from halotrack.tracking.schema import Session

DEFAULT_VISIT_GAP_MINUTES = 30


@dataclass
class SourceVisitors:
    """Visitor counts for one first-touch channel."""

    source: str
    medium: str
    visitors: int
    visits: int
    bounces: int

    @property
    def bounce_rate(self) -> float:
        return self.bounces / self.visits * 100 if self.visits else 0.0


@dataclass
class VisitorStats:
    """Aggregated visitor metrics for a period."""

    total_visitors: int = 0
    total_visits: int = 0
    total_page_views: int = 0
    bounces: int = 0
    by_source: list[SourceVisitors] = field(default_factory=list)

    @property
    def bounce_rate(self) -> float:
        return self.bounces / self.total_visits * 100 if self.total_visits else 0.0

    @property
    def pages_per_visit(self) -> float:
        return self.total_page_views / self.total_visits if self.total_visits else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_visitors": self.total_visitors,
            "total_visits": self.total_visits,
            "total_page_views": self.total_page_views,
            "bounce_rate": self.bounce_rate,
            "pages_per_visit": self.pages_per_visit,
            "visitors_by_source": [
                {
                    "source": s.source,
                    "medium": s.medium,
                    "visitors": s.visitors,
                    "visits": s.visits,
                    "bounce_rate": s.bounce_rate,
                }
                for s in self.by_source
            ],
        }


def collapse_visits(
    page_views: pd.DataFrame | list[dict[str, Any]],
    visit_gap_minutes: int = DEFAULT_VISIT_GAP_MINUTES,
) -> pd.DataFrame:
    """Collapse page views into visits.

    Args:
        page_views: Rows with `session_id` and `created_at`.
        visit_gap_minutes: Inactivity gap that starts a new visit.

    Returns:
        DataFrame with one row per visit: session_id, visit_number,
        started_at, page_views.
    """
    df = page_views if isinstance(page_views, pd.DataFrame) else pd.DataFrame(page_views)
    columns = ["session_id", "visit_number", "started_at", "page_views"]
    if df.empty:
        return pd.DataFrame(columns=columns)

    df = df[["session_id", "created_at"]].copy()
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
    df = df.sort_values(["session_id", "created_at"], kind="stable")

    gaps = df.groupby("session_id")["created_at"].diff()
    df["new_visit"] = gaps.isna() | (gaps > pd.Timedelta(minutes=visit_gap_minutes))
    df["visit_number"] = df.groupby("session_id")["new_visit"].cumsum().astype(int)

    visits = (
        df.groupby(["session_id", "visit_number"])
        .agg(started_at=("created_at", "min"), page_views=("created_at", "size"))
        .reset_index()
    )
    return visits[columns]


def visitor_analytics(
    page_views: pd.DataFrame | list[dict[str, Any]],
    sessions: Iterable[Session] = (),
    visit_gap_minutes: int = DEFAULT_VISIT_GAP_MINUTES,
) -> VisitorStats:
    """Compute visitor metrics from page views.

    Visits are attributed to the first-touch channel of their session;
    sessions without one count as Direct / (none).

    Example:
        stats = visitor_analytics(event_store.list_page_views("acme", start, end), sessions)
        print(f"{stats.total_visitors} visitors, {stats.bounce_rate:.1f}% bounce")
    """
    visits = collapse_visits(page_views, visit_gap_minutes)
    if visits.empty:
        return VisitorStats()

    channels = {
        s.session_id: (s.first_touch.source or "Direct", s.first_touch.medium or "(none)")
        for s in sessions
    }
    visits["source"] = visits["session_id"].map(lambda sid: channels.get(sid, ("Direct", "(none)"))[0])
    visits["medium"] = visits["session_id"].map(lambda sid: channels.get(sid, ("Direct", "(none)"))[1])
    visits["bounced"] = visits["page_views"] == 1

    grouped = (
        visits.groupby(["source", "medium"], sort=False)
        .agg(
            visitors=("session_id", "nunique"),
            visits=("session_id", "size"),
            bounces=("bounced", "sum"),
        )
        .reset_index()
        .sort_values("visitors", ascending=False, kind="stable")
    )

    return VisitorStats(
        total_visitors=int(visits["session_id"].nunique()),
        total_visits=len(visits),
        total_page_views=int(visits["page_views"].sum()),
        bounces=int(visits["bounced"].sum()),
        by_source=[
            SourceVisitors(
                source=row.source,
                medium=row.medium,
                visitors=int(row.visitors),
                visits=int(row.visits),
                bounces=int(row.bounces),
            )
            for row in grouped.itertuples(index=False)
        ],
    )
