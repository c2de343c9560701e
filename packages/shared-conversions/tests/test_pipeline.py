"""Tests for per-channel pipeline aggregation."""

from datetime import UTC, datetime, timedelta

import pytest

from halotrack.conversions.attribution import DIRECT_CHANNEL
from halotrack.conversions.pipeline import PipelineReport, SourceCredit, aggregate_pipeline
from halotrack.conversions.schema import AttributionModel, Conversion, ConversionType, LeadStatus
from halotrack.tracking.schema import Touchpoint

DAY_0 = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


def touchpoint(session_id: str, source: str, medium: str, day: int, number: int) -> Touchpoint:
    return Touchpoint(
        client_id="acme",
        session_id=session_id,
        touchpoint_number=number,
        timestamp=DAY_0 + timedelta(days=day),
        source=source,
        medium=medium,
    )


def snapshot(first: tuple[str, str], last: tuple[str, str]) -> dict:
    return {
        "match_type": "session",
        "first_touch": {"source": first[0], "medium": first[1]},
        "last_touch": {"source": last[0], "medium": last[1]},
    }


@pytest.fixture
def won_order():
    """Session S: google/cpc on day 0, facebook/cpc on day 5, won for 1000 on day 6."""
    return Conversion(
        client_id="acme",
        external_id="1",
        session_id="S",
        value=1000.0,
        status=LeadStatus.WON,
        created_at=DAY_0 + timedelta(days=6),
        attribution_data=snapshot(("google", "cpc"), ("facebook", "cpc")),
    )


@pytest.fixture
def journeys():
    return {
        "S": [
            touchpoint("S", "google", "cpc", 0, 1),
            touchpoint("S", "facebook", "cpc", 5, 2),
        ]
    }


class TestAggregatePipeline:
    """Test folding credit into channel totals."""

    def test_linear_splits_credit_and_value(self, won_order, journeys):
        report = aggregate_pipeline([won_order], journeys, AttributionModel.LINEAR)

        google = report.get("google / cpc")
        facebook = report.get("facebook / cpc")
        assert google.total_credit == pytest.approx(0.5)
        assert google.weighted_value == pytest.approx(500.0)
        assert facebook.total_credit == pytest.approx(0.5)
        assert facebook.weighted_value == pytest.approx(500.0)

    def test_last_touch_credits_stored_last_touch(self, won_order, journeys):
        report = aggregate_pipeline([won_order], journeys, AttributionModel.LAST_TOUCH)

        assert [s.source for s in report.by_source] == ["facebook / cpc"]
        assert report.by_source[0].total_credit == 1.0
        assert report.by_source[0].weighted_value == 1000.0
        assert report.get("google / cpc") is None

    def test_first_touch(self, won_order, journeys):
        report = aggregate_pipeline([won_order], journeys, "first_touch")

        assert report.get("google / cpc").weighted_value == 1000.0

    def test_open_leads_add_credit_but_no_value(self):
        lead = Conversion(
            client_id="acme",
            external_id="L-1",
            conversion_type=ConversionType.LEAD,
            deal_value=5000.0,
            attribution_data=snapshot(("google", "cpc"), ("google", "cpc")),
        )

        row = aggregate_pipeline([lead]).get("google / cpc")

        assert row.total_credit == 1.0
        assert row.won_credit == 0.0
        assert row.weighted_value == 0.0
        assert row.win_rate == 0.0

    def test_won_lead_uses_deal_value(self):
        lead = Conversion(
            client_id="acme",
            external_id="L-1",
            conversion_type=ConversionType.LEAD,
            status=LeadStatus.WON,
            deal_value=5000.0,
            attribution_data=snapshot(("google", "cpc"), ("google", "cpc")),
        )

        row = aggregate_pipeline([lead]).get("google / cpc")

        assert row.weighted_value == 5000.0
        assert row.win_rate == 100.0

    def test_win_rate_per_channel(self):
        conversions = [
            Conversion(
                client_id="acme",
                external_id=str(i),
                conversion_type=ConversionType.LEAD,
                status=status,
                attribution_data=snapshot(("google", "cpc"), ("google", "cpc")),
            )
            for i, status in enumerate([LeadStatus.WON, LeadStatus.LOST, LeadStatus.NEW, LeadStatus.WON])
        ]

        report = aggregate_pipeline(conversions)

        assert report.get("google / cpc").win_rate == 50.0
        assert report.total_conversions == 4
        assert report.status_counts == {"won": 2, "lost": 1, "new": 1}
        assert report.won == 2
        assert report.win_rate == 50.0

    def test_sorted_by_weighted_value_with_stable_ties(self):
        def order(external_id, channel, value, status=LeadStatus.WON):
            return Conversion(
                client_id="acme",
                external_id=external_id,
                value=value,
                status=status,
                attribution_data=snapshot(channel, channel),
            )

        report = aggregate_pipeline(
            [
                order("1", ("bing", "cpc"), 100.0),
                order("2", ("google", "cpc"), 300.0),
                order("3", ("tiktok", "paid"), 0.0, LeadStatus.LOST),
                order("4", ("email", "newsletter"), 0.0, LeadStatus.LOST),
            ]
        )

        assert [s.source for s in report.by_source] == [
            "google / cpc",
            "bing / cpc",
            "tiktok / paid",
            "email / newsletter",
        ]

    def test_input_order_does_not_change_totals(self, won_order, journeys):
        other = Conversion(
            client_id="acme",
            external_id="2",
            value=200.0,
            attribution_data=snapshot(("bing", "cpc"), ("bing", "cpc")),
        )

        forward = aggregate_pipeline([won_order, other], journeys, AttributionModel.LINEAR)
        backward = aggregate_pipeline([other, won_order], journeys, AttributionModel.LINEAR)

        assert {s.source: s.weighted_value for s in forward.by_source} == pytest.approx(
            {s.source: s.weighted_value for s in backward.by_source}
        )

    def test_unattributed_conversion_is_credited_to_its_platform(self):
        order = Conversion(client_id="acme", external_id="1", platform="shopify", value=50.0)

        report = aggregate_pipeline([order], {}, AttributionModel.LINEAR)

        assert report.by_source[0].source == "shopify / (none)"

    def test_blank_snapshot_is_direct(self):
        order = Conversion(
            client_id="acme",
            external_id="1",
            value=50.0,
            attribution_data=snapshot((None, None), (None, None)),
        )

        assert aggregate_pipeline([order]).by_source[0].source == DIRECT_CHANNEL

    def test_empty(self):
        report = aggregate_pipeline([])

        assert report.by_source == []
        assert report.total_conversions == 0
        assert report.win_rate == 0.0


class TestPresentation:
    def test_source_credit_rounds_credits_only(self):
        row = SourceCredit(source="google / cpc", total_credit=1 / 3, won_credit=1 / 3, weighted_value=1000 / 3)

        data = row.to_dict()

        assert data["total_credit"] == 0.33
        assert data["won_credit"] == 0.33
        assert data["weighted_value"] == 1000 / 3
        assert data["win_rate"] == pytest.approx(100.0)

    def test_report_to_dict_and_dataframe(self, won_order, journeys):
        report = aggregate_pipeline([won_order], journeys, AttributionModel.LINEAR)

        data = report.to_dict()
        df = report.to_dataframe()

        assert data["model"] == "linear"
        assert len(data["by_source"]) == 2
        assert list(df.columns) == ["source", "total_credit", "won_credit", "weighted_value", "win_rate"]
        assert df["weighted_value"].sum() == pytest.approx(1000.0)

    def test_empty_dataframe_has_columns(self):
        df = PipelineReport(model=AttributionModel.LAST_TOUCH).to_dataframe()

        assert df.empty
        assert "weighted_value" in df.columns
