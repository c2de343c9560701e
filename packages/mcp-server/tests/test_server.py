"""Tests for MCP server tools, resources, and prompts."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import Mock, patch

import pytest

from halotrack.conversions.schema import ConversionType, LeadStatus
from halotrack.forwarding import ClientSettings, GoogleSettings
from halotrack_mcp.server import mcp

LANDING = "https://acme.example.com/pricing?utm_source=google&utm_medium=cpc&gclid=abc"
UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"


def tool(name: str):
    return mcp._tool_manager._tools[name].fn


def today() -> str:
    return datetime.now(UTC).date().isoformat()


# =============================================================================
# Tracking Tool Tests
# =============================================================================


class TestRecordTouch:
    def test_first_visit_creates_session(self, backend, session_store, touchpoint_store, event_store):
        result = tool("record_touch")("acme", LANDING, headers={"User-Agent": UA})

        assert result["success"] is True
        assert result["created"] is True
        assert result["anonymous"] is False
        assert result["touchpoint_number"] == 1
        session = session_store.get("acme", result["session_id"])
        assert session.first_touch.source == "google"
        assert session.click_ids.gclid == "abc"
        assert len(touchpoint_store.touchpoints) == 1
        assert [e.event_name for e in event_store.events] == ["page_view"]

    def test_returning_visitor(self, backend, session_store):
        first = tool("record_touch")("acme", LANDING)

        second = tool("record_touch")(
            "acme",
            "https://acme.example.com/?utm_source=facebook&utm_medium=paid_social",
            cookies={"_halo": first["session_id"]},
        )

        assert second["created"] is False
        assert second["session_id"] == first["session_id"]
        assert second["touchpoint_number"] == 2
        session = session_store.get("acme", first["session_id"])
        assert session.first_touch.source == "google"
        assert session.last_touch.source == "facebook"

    def test_denied_consent_is_anonymous(self, backend, session_store, event_store):
        result = tool("record_touch")("acme", LANDING, consent="denied")

        assert result["anonymous"] is True
        assert result["session_id"] is None
        assert session_store.sessions == {}
        assert event_store.anonymous[0].utm_source == "google"

    def test_own_site_referrer_is_ignored(self, backend, session_store):
        result = tool("record_touch")("acme", "https://acme.example.com/", referrer="https://acme.example.com/blog")

        assert session_store.get("acme", result["session_id"]).first_touch.referrer is None

    def test_unknown_client(self, backend):
        assert tool("record_touch")("globex", LANDING) == {"success": False, "error": "Unknown client: globex"}

    def test_invalid_consent(self, backend):
        result = tool("record_touch")("acme", LANDING, consent="maybe")

        assert result["success"] is False


class TestIdentifyVisitor:
    def test_identify(self, backend, session_store, make_session):
        session_store.insert(make_session("sess-1"))

        result = tool("identify_visitor")("acme", "sess-1", email=" Jane@Example.com ", phone="+420 777 123 456")

        assert result == {"success": True}
        session = session_store.get("acme", "sess-1")
        assert session.email == "jane@example.com"
        assert session.phone == "420777123456"

    def test_unknown_session(self, backend):
        assert tool("identify_visitor")("acme", "nope", email="jane@example.com") == {
            "success": False,
            "error": "Session not found",
        }

    def test_no_identity(self, backend, session_store, make_session):
        session_store.insert(make_session("sess-1"))

        assert tool("identify_visitor")("acme", "sess-1")["success"] is False


class TestTrackEvent:
    def test_stores_event(self, backend, event_store):
        assert tool("track_event")("acme", "sess-1", "add_to_cart", {"sku": "11"}) == {"success": True}
        assert event_store.events[0].properties == {"sku": "11"}

    def test_without_session(self, backend, event_store):
        assert tool("track_event")("acme", None, "add_to_cart") == {"success": False}
        assert event_store.events == []


# =============================================================================
# Conversion Tool Tests
# =============================================================================


class TestIngestOrder:
    def test_woocommerce_order(self, backend, session_store, conversion_store, make_session, woocommerce_order):
        session_store.insert(make_session("sess-1"))

        result = tool("ingest_order")("acme", woocommerce_order)

        assert result == {
            "success": True,
            "attributed": True,
            "match_type": "session",
            "forwarded": {"facebook": False, "google": False},
        }
        stored = conversion_store.conversions[("acme", "1042", "woocommerce")]
        assert stored.value == 1250.0
        assert stored.email == "jane@example.com"

    def test_unattributed_order(self, backend, conversion_store):
        result = tool("ingest_order")("acme", {"order_id": "A-1", "total": 10, "session_id": "abc"})

        assert result["success"] is True
        assert result["attributed"] is False
        assert result["match_type"] == "none"
        assert conversion_store.conversions[("acme", "A-1", "custom")].attribution_data == {"match_type": "none"}

    def test_payload_without_identifier(self, backend):
        result = tool("ingest_order")("acme", {"total": 10})

        assert result["success"] is False
        assert "identifier" in result["error"]

    def test_unknown_client(self, backend, woocommerce_order):
        assert tool("ingest_order")("globex", woocommerce_order)["error"] == "Unknown client: globex"

    def test_client_settings_are_used(self, backend, acme, shopify_order):
        acme.settings = ClientSettings(currency="EUR", google=GoogleSettings(measurement_id="G-1", api_secret="s"))

        with patch("halotrack.conversions.ConversionIngestor") as mock_ingestor:
            mock_ingestor.return_value.ingest.return_value.to_dict.return_value = {"success": True}
            tool("ingest_order")("acme", shopify_order)

        assert mock_ingestor.call_args.args[2] is acme.settings

    def test_store_failure(self, backend, woocommerce_order):
        backend.conversions = Mock()
        backend.conversions.upsert.side_effect = RuntimeError("boom")

        assert tool("ingest_order")("acme", woocommerce_order) == {"success": False, "error": "Internal error"}


class TestIngestLead:
    def test_lead(self, backend, session_store, conversion_store, make_session, lead_payload):
        session_store.insert(make_session("sess-1"))

        result = tool("ingest_lead")("acme", lead_payload)

        assert result["success"] is True
        assert result["match_type"] == "session"
        stored = conversion_store.conversions[("acme", "L-100", "form")]
        assert stored.conversion_type == ConversionType.LEAD
        assert stored.status == LeadStatus.NEW
        assert stored.days_to_convert == 18

    def test_update_lead_status(self, backend, conversion_store, lead_payload):
        tool("ingest_lead")("acme", lead_payload)

        result = tool("update_lead_status")("acme", "L-100", "won", deal_value=5000)

        assert result == {"success": True}
        stored = conversion_store.conversions[("acme", "L-100", "form")]
        assert stored.status == LeadStatus.WON
        assert stored.deal_value == 5000

    def test_update_unknown_lead(self, backend):
        assert tool("update_lead_status")("acme", "nope", "won") == {
            "success": False,
            "error": "Conversion not found",
        }

    @pytest.mark.parametrize("status,deal_value", [("closed", None), ("won", -1)])
    def test_update_invalid(self, backend, lead_payload, status, deal_value):
        tool("ingest_lead")("acme", lead_payload)

        assert tool("update_lead_status")("acme", "L-100", status, deal_value)["success"] is False


class TestNormalizeOrders:
    def test_detects_platform(self, woocommerce_order, shopify_order):
        result = tool("normalize_orders")("acme", [woocommerce_order, shopify_order])

        assert [r["platform"] for r in result] == ["woocommerce", "shopify"]
        assert result[1]["currency"] == "EUR"

    def test_forced_platform(self):
        result = tool("normalize_orders")("acme", [{"order_id": "1", "total": "5"}], platform="custom")

        assert result[0]["value"] == 5.0

    def test_unknown_platform(self):
        with pytest.raises(ValueError, match="Unknown order platform"):
            tool("normalize_orders")("acme", [], platform="magento")


# =============================================================================
# Reporting Tool Tests
# =============================================================================


class TestReports:
    @pytest.fixture
    def journey(self, backend, session_store, touchpoint_store, make_session, woocommerce_order):
        from halotrack.tracking.schema import Touchpoint

        session_store.insert(make_session("sess-1"))
        for number, (source, medium, day) in enumerate([("google", "cpc", 1), ("facebook", "cpc", 6)], start=1):
            touchpoint_store.append(
                Touchpoint(
                    client_id="acme",
                    session_id="sess-1",
                    touchpoint_number=number,
                    timestamp=datetime(2025, 1, day, 10, 0, tzinfo=UTC),
                    source=source,
                    medium=medium,
                )
            )
        tool("ingest_order")("acme", woocommerce_order)

    def test_pipeline_report_linear(self, journey):
        report = tool("pipeline_report")("acme", "2025-01-01", "2025-01-31", model="linear")

        assert report["model"] == "linear"
        assert report["total_conversions"] == 1
        assert {row["source"]: row["weighted_value"] for row in report["by_source"]} == {
            "google / cpc": 625.0,
            "facebook / cpc": 625.0,
        }

    def test_pipeline_report_default_model(self, journey):
        report = tool("pipeline_report")("acme", "2025-01-01", "2025-01-31")

        assert report["model"] == "last_touch"
        assert report["by_source"][0]["source"] == "google / cpc"

    def test_pipeline_report_leads_only(self, journey):
        report = tool("pipeline_report")("acme", "2025-01-01", "2025-01-31", conversion_type="lead")

        assert report["total_conversions"] == 0

    @pytest.mark.parametrize(
        "kwargs",
        [{"start_date": "January"}, {"model": "markov"}, {"conversion_type": "refund"}],
    )
    def test_pipeline_report_invalid_input(self, backend, kwargs):
        args = {"client_id": "acme", "start_date": "2025-01-01", "end_date": "2025-01-31", **kwargs}

        assert tool("pipeline_report")(**args)["success"] is False

    def test_revenue_summary(self, journey):
        summary = tool("revenue_summary")("acme", "2025-01-01", "2025-01-31")

        assert summary["total_value"] == 1250.0
        assert summary["attribution_rate"] == 100.0
        assert summary["revenue_by_source"] == [
            {
                "source": "google / cpc",
                "value": 1250.0,
                "conversions": 1,
                "spend": 0.0,
                "cpa": 0.0,
                "roas": 0.0,
                "profit": 1250.0,
            }
        ]

    def test_revenue_summary_with_spend(self, journey):
        tool("import_ad_spend")("acme", [{"date": "2025-01-10", "source": "Google", "medium": "CPC", "spend": 250}])

        summary = tool("revenue_summary")("acme", "2025-01-01", "2025-01-31")

        row = summary["revenue_by_source"][0]
        assert (row["spend"], row["cpa"], row["roas"], row["profit"]) == (250.0, 250.0, 5.0, 1000.0)
        assert summary["total_spend"] == 250.0

    def test_leads_summary(self, backend, session_store, make_session, lead_payload):
        session_store.insert(make_session("sess-1"))
        tool("ingest_lead")("acme", lead_payload)
        tool("import_ad_spend")("acme", [{"date": "2025-01-05", "source": "google", "medium": "cpc", "spend": 300}])

        summary = tool("leads_summary")("acme", "2025-01-01", "2025-01-31")

        assert summary["total_leads"] == 1
        assert summary["cost_per_lead"] == 300.0
        assert summary["top_source"] == "google / cpc"
        assert summary["leads_by_source"][0]["cpl"] == 300.0
        assert summary["leads_by_form_type"][0]["count"] == 1

    def test_leads_summary_invalid_dates(self, backend):
        assert tool("leads_summary")("acme", "2025-01-01", "soon")["success"] is False

    def test_visitor_analytics(self, backend):
        first = tool("record_touch")("acme", LANDING)
        tool("record_touch")("acme", "https://acme.example.com/checkout", cookies={"_halo": first["session_id"]})
        tool("record_touch")("acme", "https://acme.example.com/")

        stats = tool("visitor_analytics")("acme", today(), today())

        assert stats["total_visitors"] == 2
        assert stats["total_visits"] == 2
        assert stats["total_page_views"] == 3
        assert stats["bounce_rate"] == 50.0
        sources = {(s["source"], s["medium"]) for s in stats["visitors_by_source"]}
        assert sources == {("google", "cpc"), ("Direct", "(none)")}

    def test_visitor_analytics_empty(self, backend):
        stats = tool("visitor_analytics")("acme", "2020-01-01", "2020-01-31")

        assert stats["total_visitors"] == 0

    def test_list_attribution_models(self):
        models = tool("list_attribution_models")()

        assert [m["model"] for m in models] == [
            "first_touch",
            "last_touch",
            "linear",
            "position_based",
            "u_shaped",
            "time_decay",
        ]


# =============================================================================
# Ad Spend Tool Tests
# =============================================================================


class TestAdSpend:
    ROWS = [
        {"date": "2025-01-10", "source": "google", "medium": "cpc", "campaign": "brand", "spend": 250},
        {"date": "2025-01-11", "source": "google", "medium": "cpc", "spend": "100.5"},
        {"date": "2025-01-11", "source": "facebook", "medium": "paid_social", "spend": 80, "currency": "EUR"},
    ]

    def test_import(self, backend, spend_store):
        result = tool("import_ad_spend")("acme", self.ROWS)

        assert result == {"success": True, "inserted": 3}
        currencies = {e.source: e.currency for e in spend_store.entries.values()}
        assert currencies == {"google": "CZK", "facebook": "EUR"}

    def test_reimport_replaces_spend(self, backend, spend_store):
        tool("import_ad_spend")("acme", self.ROWS[:1])
        tool("import_ad_spend")("acme", [{**self.ROWS[0], "spend": 300}])

        assert [e.spend for e in spend_store.entries.values()] == [300.0]

    def test_invalid_row(self, backend, spend_store):
        result = tool("import_ad_spend")("acme", [self.ROWS[0], {"date": "2025-01-12", "source": "google"}])

        assert result["success"] is False
        assert "row 1" in result["error"]
        assert spend_store.entries == {}

    def test_unknown_client(self, backend):
        result = tool("import_ad_spend")("globex", self.ROWS)

        assert result == {"success": False, "error": "Unknown client: globex"}

    def test_get_newest_first(self, backend):
        tool("import_ad_spend")("acme", self.ROWS)

        entries = tool("get_ad_spend")("acme", "2025-01-11", "2025-01-31")

        assert [e["date"] for e in entries] == ["2025-01-11", "2025-01-11"]
        assert tool("get_ad_spend")("acme")[-1]["campaign"] == "brand"

    def test_spend_by_source(self, backend):
        tool("import_ad_spend")("acme", self.ROWS)

        rows = tool("spend_by_source")("acme")

        assert rows == [
            {"source": "google", "medium": "cpc", "total_spend": 350.5},
            {"source": "facebook", "medium": "paid_social", "total_spend": 80.0},
        ]

    def test_update(self, backend, spend_store):
        tool("import_ad_spend")("acme", self.ROWS[:1])
        spend_id = tool("get_ad_spend")("acme")[0]["spend_id"]

        assert tool("update_ad_spend")("acme", spend_id, {"spend": 275}) == {"success": True}
        assert tool("get_ad_spend")("acme")[0]["spend"] == 275.0

    def test_update_not_found(self, backend):
        result = tool("update_ad_spend")("acme", "00000000-0000-0000-0000-000000000000", {"spend": 1})

        assert result == {"success": False, "error": "Ad spend entry not found"}

    def test_update_rejects_invalid_changes(self, backend):
        tool("import_ad_spend")("acme", self.ROWS[:1])
        spend_id = tool("get_ad_spend")("acme")[0]["spend_id"]

        assert tool("update_ad_spend")("acme", spend_id, {"client_id": "globex"})["success"] is False
        assert tool("update_ad_spend")("acme", spend_id, {"spend": -5})["success"] is False

    def test_delete(self, backend):
        tool("import_ad_spend")("acme", self.ROWS[:1])
        spend_id = tool("get_ad_spend")("acme")[0]["spend_id"]

        assert tool("delete_ad_spend")("acme", spend_id) == {"success": True}
        assert tool("get_ad_spend")("acme") == []
        assert tool("delete_ad_spend")("acme", spend_id)["success"] is False


# =============================================================================
# Privacy Tool Tests
# =============================================================================


class TestEraseCustomerData:
    def test_erase(self, backend, session_store, conversion_store, make_session, woocommerce_order):
        session_store.insert(make_session("sess-1", email="jane@example.com"))
        tool("ingest_order")("acme", woocommerce_order)

        result = tool("erase_customer_data")("acme", "Jane@Example.com")

        assert result == {"success": True, "sessions_deleted": 1, "conversions_anonymized": 1}
        assert conversion_store.conversions[("acme", "1042", "woocommerce")].email is None

    def test_email_required(self, backend):
        assert tool("erase_customer_data")("acme", " ") == {"success": False, "error": "Email required"}


# =============================================================================
# BigQuery Tool Tests
# =============================================================================


@patch("halotrack.bigquery.TenantBigQueryClient")
def test_query_bigquery(mock_client_class):
    mock_client = mock_client_class.return_value
    mock_client.query.return_value = Mock(rows=[{"n": 1}], total_rows=1, bytes_processed=1024, cache_hit=False)

    result = tool("query_bigquery")(client_id="acme", sql="SELECT COUNT(*) AS n FROM sessions", max_results=100)

    mock_client_class.assert_called_once_with(client_id="acme")
    mock_client.query.assert_called_once_with("SELECT COUNT(*) AS n FROM sessions", max_results=100)
    assert result == {"rows": [{"n": 1}], "total_rows": 1, "bytes_processed": 1024, "cache_hit": False}


@patch("halotrack.bigquery.TenantBigQueryClient")
def test_estimate_query_cost(mock_client_class):
    mock_client_class.return_value.estimate_cost.return_value = {"bytes_processed": 10}

    assert tool("estimate_query_cost")(client_id="acme", sql="SELECT 1") == {"bytes_processed": 10}


@patch("halotrack.bigquery.TenantBigQueryClient")
def test_get_table_schema(mock_client_class):
    schema = [{"name": "session_id", "type": "STRING", "mode": "NULLABLE", "description": None}]
    mock_client_class.return_value.get_table_schema.return_value = schema

    assert tool("get_table_schema")(client_id="acme", table_name="sessions") == schema
    mock_client_class.return_value.get_table_schema.assert_called_once_with("sessions")


# =============================================================================
# Registry, Resource and Prompt Tests
# =============================================================================


def test_get_client(backend):
    result = tool("get_client")("acme")

    assert result["client_id"] == "acme"
    assert result["dataset"] == "halotrack_acme"


def test_get_client_not_found(backend):
    assert tool("get_client")("globex") is None


def test_client_resource(backend, acme):
    acme.settings = ClientSettings(google=GoogleSettings(measurement_id="G-1", api_secret="s"))
    resource = mcp._resource_manager._templates["client://{client_id}"].fn

    text = resource("acme")

    assert "Client: Acme Coffee" in text
    assert "Dataset: halotrack_acme" in text
    assert "Forwarding: google\n" in text


def test_client_resource_not_found(backend):
    resource = mcp._resource_manager._templates["client://{client_id}"].fn

    assert resource("globex") == "Client globex not found"


def test_models_resource():
    text = mcp._resource_manager._resources["models://list"].fn()

    assert "- linear: Equal credit to every marketing touch" in text
    assert len(text.splitlines()) == 6


def test_compare_models_prompt():
    prompt = mcp._prompt_manager._prompts["compare_attribution_models"].fn("acme", "2025-01-01", "2025-01-31")

    assert 'client "acme"' in prompt
    assert "time_decay" in prompt


def test_monthly_report_prompt():
    prompt = mcp._prompt_manager._prompts["monthly_attribution_report"].fn("acme", "2025-01")

    assert "2025-01" in prompt
    assert "revenue_summary" in prompt
