"""
HaloTrack MCP Server - Main entry point.

MCP server exposing the HaloTrack attribution engine:
- Touch recording, visitor identification and custom events
- Order and lead ingestion with ad-platform forwarding
- Pipeline, revenue, lead and visitor reports under any attribution model
- Ad spend import and editing, joined into ROAS, CPA and cost per lead
- Tenant-scoped BigQuery queries and schema inspection
- Right-to-erasure requests
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from fastmcp import FastMCP

logger = logging.getLogger(__name__)

# Initialize server
mcp = FastMCP("HaloTrack Attribution")


# =============================================================================
# Backend wiring
# =============================================================================


@dataclass
class Backend:
    """Stores, client registry and attribution settings used by the tools."""

    sessions: Any
    touchpoints: Any
    events: Any
    conversions: Any
    registry: Any
    config: Any
    spend: Any = None


_backend: Backend | None = None


def get_backend() -> Backend:
    """Build the BigQuery-backed stores on first use."""
    global _backend
    if _backend is None:
        from halotrack.bigquery import (
            BigQueryAdSpendStore,
            BigQueryConfig,
            BigQueryConversionStore,
            BigQueryEventStore,
            BigQuerySessionStore,
            BigQueryTouchpointStore,
            ClientRegistry,
        )
        from halotrack.conversions import AttributionConfig

        bq_config = BigQueryConfig.from_env()
        _backend = Backend(
            sessions=BigQuerySessionStore(bq_config),
            touchpoints=BigQueryTouchpointStore(bq_config),
            events=BigQueryEventStore(bq_config),
            conversions=BigQueryConversionStore(bq_config),
            registry=ClientRegistry(),
            config=AttributionConfig.from_env(),
            spend=BigQueryAdSpendStore(bq_config),
        )
    return _backend


def _require_client(backend: Backend, client_id: str) -> Any:
    client = backend.registry.get_client(client_id)
    if client is None:
        raise ValueError(f"Unknown client: {client_id}")
    return client


def _report_request(
    client_id: str,
    start_date: str,
    end_date: str,
    model: str | None = None,
    conversion_type: str | None = None,
) -> Any:
    from halotrack.conversions import AttributionModel, ConversionType, ReportRequest

    return ReportRequest(
        client_id=client_id,
        start_date=date.fromisoformat(start_date),
        end_date=date.fromisoformat(end_date),
        model=AttributionModel.parse(model) if model else None,
        conversion_type=ConversionType(conversion_type) if conversion_type else None,
    )


def _reporter(backend: Backend) -> Any:
    from halotrack.conversions import AttributionReporter

    return AttributionReporter(
        backend.conversions,
        backend.touchpoints,
        default_model=backend.config.default_model,
        half_life_days=backend.config.half_life_days,
        spend=backend.spend,
    )


# =============================================================================
# Tracking Tools
# =============================================================================


@mcp.tool()
def record_touch(
    client_id: str,
    url: str,
    referrer: str | None = None,
    headers: dict | None = None,
    cookies: dict | None = None,
    consent: str | None = None,
) -> dict:
    """
    Record a page view against the visitor's session.

    Creates the session on the first visit, refreshes its last touch when the
    URL carries UTM parameters or click ids, and journals marketing touches.
    Visitors who denied consent are counted anonymously.

    Args:
        client_id: Client identifier (e.g., "acme")
        url: Full landing URL including the query string
        referrer: Referring URL, if any
        headers: Request headers (User-Agent, X-Forwarded-For, geo headers)
        cookies: Request cookies (_halo session cookie, consent cookies)
        consent: Explicit consent ("granted", "denied", "unknown")

    Returns:
        Session id to store in the _halo cookie, plus fbc/fbp to refresh
    """
    from halotrack.tracking import ConsentStatus, TouchRecorder, TouchRequest

    backend = get_backend()
    try:
        client = _require_client(backend, client_id)
        request = TouchRequest.from_url(url, referrer=referrer, headers=headers, cookies=cookies)
        if consent:
            request.consent = ConsentStatus(consent)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    recorder = TouchRecorder(
        backend.sessions,
        backend.touchpoints,
        backend.events,
        site_host=client.site_host or backend.config.site_host,
    )
    result = recorder.record(client_id, request)

    return {
        "success": True,
        "session_id": result.session_id,
        "created": result.created,
        "consent_status": result.consent_status.value,
        "anonymous": result.anonymous,
        "touchpoint_number": result.touchpoint_number,
        "fbc": result.fbc,
        "fbp": result.fbp,
    }


@mcp.tool()
def identify_visitor(
    client_id: str,
    session_id: str,
    email: str | None = None,
    phone: str | None = None,
    customer_id: str | None = None,
) -> dict:
    """
    Attach an email, phone or customer id to a visitor's session.

    Later conversions carrying the same identity resolve to this session
    even when they arrive without a session id.

    Args:
        client_id: Client identifier
        session_id: Value of the visitor's _halo cookie
        email: Email address
        phone: Phone number (any formatting)
        customer_id: Shop or CRM customer id

    Returns:
        Whether the session was found and updated
    """
    from halotrack.tracking import identify_session

    backend = get_backend()
    try:
        updated = identify_session(backend.sessions, client_id, session_id, email, phone, customer_id)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    if not updated:
        return {"success": False, "error": "Session not found"}
    return {"success": True}


@mcp.tool()
def track_event(
    client_id: str,
    session_id: str | None,
    event_name: str,
    properties: dict | None = None,
    page_url: str | None = None,
) -> dict:
    """
    Store a custom event (e.g., "add_to_cart") for a session.

    Events without a session id are ignored.
    """
    from halotrack.tracking import TouchRecorder

    backend = get_backend()
    recorder = TouchRecorder(backend.sessions, backend.touchpoints, backend.events)
    stored = recorder.track_event(client_id, session_id, event_name, properties, page_url)
    return {"success": stored}


# =============================================================================
# Conversion Tools
# =============================================================================


@mcp.tool()
def ingest_order(client_id: str, payload: dict) -> dict:
    """
    Ingest an order webhook and attribute it to a visitor.

    The payload format (WooCommerce, Shopify or custom) is detected
    automatically. The order is matched to a session by session id, email,
    phone or customer id, stored with a snapshot of the session's attribution,
    and forwarded to the client's Facebook and Google destinations.

    Args:
        client_id: Client identifier
        payload: Decoded webhook body

    Returns:
        success, attributed, match_type and per-destination forwarding flags
    """
    from halotrack.conversions import ConversionError, ConversionIngestor, detect_order_normalizer
    from halotrack.conversions.ingestion import INTERNAL_ERROR

    backend = get_backend()
    try:
        client = _require_client(backend, client_id)
        normalizer = detect_order_normalizer(payload, client_id, default_currency=client.settings.currency)
        conversion = normalizer.normalize(payload)
    except (ValueError, ConversionError) as e:
        return {"success": False, "error": str(e)}
    except Exception:
        logger.exception(f"Failed to prepare order for client {client_id}")
        return {"success": False, "error": INTERNAL_ERROR}

    ingestor = ConversionIngestor(backend.sessions, backend.conversions, client.settings)
    return ingestor.ingest(conversion).to_dict()


@mcp.tool()
def ingest_lead(client_id: str, payload: dict) -> dict:
    """
    Ingest a website form lead and attribute it to a visitor.

    Leads are forwarded to ad platforms only when the form carried
    consent_given (or gdpr_consent).

    Args:
        client_id: Client identifier
        payload: Form fields (email, phone, name, company, message, session_id, ...)

    Returns:
        success, attributed, match_type and per-destination forwarding flags
    """
    from halotrack.conversions import ConversionError, ConversionIngestor, FormLeadNormalizer
    from halotrack.conversions.ingestion import INTERNAL_ERROR

    backend = get_backend()
    try:
        client = _require_client(backend, client_id)
        conversion = FormLeadNormalizer(client_id, default_currency=client.settings.currency).normalize(payload)
    except (ValueError, ConversionError) as e:
        return {"success": False, "error": str(e)}
    except Exception:
        logger.exception(f"Failed to prepare lead for client {client_id}")
        return {"success": False, "error": INTERNAL_ERROR}

    ingestor = ConversionIngestor(backend.sessions, backend.conversions, client.settings)
    return ingestor.ingest(conversion).to_dict()


@mcp.tool()
def update_lead_status(
    client_id: str,
    external_id: str,
    status: str,
    deal_value: float | None = None,
    platform: str = "form",
) -> dict:
    """
    Move a lead through the sales pipeline.

    Args:
        client_id: Client identifier
        external_id: Lead id
        status: new, contacted, qualified, won or lost
        deal_value: Closed deal value (optional)
        platform: Lead source the lead was ingested under (default "form")

    Returns:
        Whether the lead was found and updated
    """
    from halotrack.conversions import ConversionIngestor

    backend = get_backend()
    ingestor = ConversionIngestor(backend.sessions, backend.conversions)
    try:
        updated = ingestor.update_lead_status(client_id, external_id, status, deal_value, platform)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    if not updated:
        return {"success": False, "error": "Conversion not found"}
    return {"success": True}


@mcp.tool()
def normalize_orders(
    client_id: str,
    payloads: list[dict],
    platform: str | None = None,
) -> list[dict]:
    """
    Normalize order payloads to the unified conversion format without storing them.

    Useful for previewing a historical export before backfilling.

    Args:
        client_id: Client identifier
        payloads: Raw order payloads
        platform: Force a format (woocommerce, shopify, custom); detected per payload otherwise

    Returns:
        List of normalized conversions
    """
    from halotrack.conversions import detect_order_normalizer
    from halotrack.conversions.normalizer import ORDER_NORMALIZERS

    if platform:
        normalizer_class = next((n for n in ORDER_NORMALIZERS if n.platform == platform), None)
        if normalizer_class is None:
            raise ValueError(f"Unknown order platform: {platform}")
        conversions = normalizer_class(client_id).normalize_batch(payloads)
    else:
        conversions = [detect_order_normalizer(p, client_id).normalize(p) for p in payloads]

    return [c.to_dict() for c in conversions]


# =============================================================================
# Reporting Tools
# =============================================================================


@mcp.tool()
def pipeline_report(
    client_id: str,
    start_date: str,
    end_date: str,
    model: str | None = None,
    conversion_type: str | None = None,
) -> dict:
    """
    Credit each marketing channel with the conversions it helped produce.

    Each conversion's touchpoint journey is replayed under the chosen model,
    so the same data can be compared across models.

    Args:
        client_id: Client identifier
        start_date: First day, YYYY-MM-DD
        end_date: Last day (inclusive), YYYY-MM-DD
        model: first_touch, last_touch (default), linear, position_based,
            u_shaped or time_decay
        conversion_type: Restrict to "lead" or "purchase"

    Returns:
        Per-channel total credit, won credit, weighted value and win rate
    """
    backend = get_backend()
    try:
        request = _report_request(client_id, start_date, end_date, model, conversion_type)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    return _reporter(backend).pipeline_report(request).to_dict()


@mcp.tool()
def revenue_summary(
    client_id: str,
    start_date: str,
    end_date: str,
    conversion_type: str | None = None,
) -> dict:
    """
    Revenue, attribution rate and days-to-convert for a date range.

    Revenue by source uses the first touch stored on each conversion. Ad
    spend of the same channel (matched case-insensitively) gives each row
    its spend, CPA, ROAS and profit.
    """
    backend = get_backend()
    try:
        request = _report_request(client_id, start_date, end_date, conversion_type=conversion_type)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    return _reporter(backend).revenue_summary(request).to_dict()


@mcp.tool()
def leads_summary(client_id: str, start_date: str, end_date: str) -> dict:
    """
    Lead-generation report for a date range.

    Returns:
        Total leads, share won, total spend, cost per lead, the top first-touch
        source, and leads by form type and by source (with spend and cost per
        lead per source)
    """
    backend = get_backend()
    try:
        request = _report_request(client_id, start_date, end_date)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    return _reporter(backend).leads_summary(request).to_dict()


# =============================================================================
# Ad Spend Tools
# =============================================================================


def _spend_store(backend: Backend) -> Any:
    if backend.spend is None:
        raise ValueError("Ad spend storage is not configured")
    return backend.spend


def _optional_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


@mcp.tool()
def import_ad_spend(client_id: str, entries: list[dict]) -> dict:
    """
    Import daily ad spend, entered by hand or parsed from a CSV export.

    Entries are upserted on (date, source, medium, campaign): importing a day
    again replaces its spend.

    Args:
        client_id: Client identifier
        entries: Rows with date (YYYY-MM-DD), source, medium, spend and
            optional campaign and currency (the client's currency by default)

    Returns:
        success and the number of entries written
    """
    from halotrack.conversions import ConversionError, parse_spend_entries

    backend = get_backend()
    try:
        client = _require_client(backend, client_id)
        parsed = parse_spend_entries(client_id, entries, default_currency=client.settings.currency)
        written = _spend_store(backend).upsert_many(parsed)
    except (ValueError, ConversionError) as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "inserted": written}


@mcp.tool()
def get_ad_spend(client_id: str, start_date: str | None = None, end_date: str | None = None) -> list[dict]:
    """
    List ad spend entries, newest date first.

    Args:
        client_id: Client identifier
        start_date: First day, YYYY-MM-DD (optional)
        end_date: Last day (inclusive), YYYY-MM-DD (optional)
    """
    backend = get_backend()
    entries = _spend_store(backend).list_in_range(client_id, _optional_date(start_date), _optional_date(end_date))
    return [entry.to_dict() for entry in entries]


@mcp.tool()
def spend_by_source(client_id: str, start_date: str | None = None, end_date: str | None = None) -> list[dict]:
    """Total ad spend per source / medium, largest first."""
    from halotrack.conversions import spend_by_source as aggregate

    backend = get_backend()
    entries = _spend_store(backend).list_in_range(client_id, _optional_date(start_date), _optional_date(end_date))
    return [row.to_dict() for row in aggregate(entries)]


@mcp.tool()
def update_ad_spend(client_id: str, spend_id: str, changes: dict) -> dict:
    """
    Correct one ad spend entry.

    Args:
        client_id: Client identifier
        spend_id: Entry id from get_ad_spend
        changes: Any of date, source, medium, campaign, spend, currency
    """
    backend = get_backend()
    try:
        updated = _spend_store(backend).update(client_id, spend_id, changes)
    except ValueError as e:
        return {"success": False, "error": str(e)}
    if not updated:
        return {"success": False, "error": "Ad spend entry not found"}
    return {"success": True}


@mcp.tool()
def delete_ad_spend(client_id: str, spend_id: str) -> dict:
    """Delete one ad spend entry."""
    backend = get_backend()
    if not _spend_store(backend).delete(client_id, spend_id):
        return {"success": False, "error": "Ad spend entry not found"}
    return {"success": True}


@mcp.tool()
def visitor_analytics(client_id: str, start_date: str, end_date: str) -> dict:
    """
    Unique visitors, visits, bounce rate and visitors by first-touch channel.

    Page views of one visitor more than the visit gap apart (30 minutes by
    default) count as separate visits.
    """
    from halotrack.tracking import visitor_analytics as compute_visitor_stats

    backend = get_backend()
    try:
        request = _report_request(client_id, start_date, end_date)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    page_views = backend.events.list_page_views(client_id, request.start, request.end)
    session_ids = sorted({view["session_id"] for view in page_views})
    sessions = backend.sessions.list_by_ids(client_id, session_ids) if session_ids else []

    stats = compute_visitor_stats(page_views, sessions, backend.config.visit_gap_minutes)
    return stats.to_dict()


@mcp.tool()
def list_attribution_models() -> list[dict]:
    """List the attribution models available to pipeline_report."""
    from halotrack.conversions import AttributionModel
    from halotrack.conversions.attribution import describe_model

    return [describe_model(model) for model in AttributionModel]


# =============================================================================
# Privacy Tools
# =============================================================================


@mcp.tool()
def erase_customer_data(client_id: str, email: str) -> dict:
    """
    Handle a right-to-erasure request.

    Deletes every session carrying the email and anonymizes the matching
    conversions (contact fields cleared, attribution replaced by a deletion
    marker). Conversion values are kept for revenue totals.
    """
    from halotrack.conversions import erase_customer_data as erase

    backend = get_backend()
    try:
        result = erase(backend.sessions, backend.conversions, client_id, email)
    except ValueError as e:
        return {"success": False, "error": str(e)}
    return result.to_dict()


# =============================================================================
# BigQuery Tools
# =============================================================================


@mcp.tool()
def query_bigquery(
    client_id: str,
    sql: str,
    max_results: int = 10000,
) -> dict:
    """
    Execute a read-only BigQuery query for a client.

    The query may only reference the client's own dataset (halotrack_{client_id}).
    Queries are validated to prevent destructive operations.

    Args:
        client_id: Client identifier (e.g., "acme")
        sql: SQL query to execute
        max_results: Maximum rows to return (default 10,000)

    Returns:
        Query results with rows and metadata
    """
    from halotrack.bigquery import TenantBigQueryClient

    client = TenantBigQueryClient(client_id=client_id)
    result = client.query(sql, max_results=max_results)

    return {
        "rows": result.rows,
        "total_rows": result.total_rows,
        "bytes_processed": result.bytes_processed,
        "cache_hit": result.cache_hit,
    }


@mcp.tool()
def estimate_query_cost(
    client_id: str,
    sql: str,
) -> dict:
    """
    Estimate the cost of a BigQuery query before running it.

    Args:
        client_id: Client identifier
        sql: SQL query to estimate

    Returns:
        Cost estimation with bytes processed and USD cost
    """
    from halotrack.bigquery import TenantBigQueryClient

    client = TenantBigQueryClient(client_id=client_id)
    return client.estimate_cost(sql)


@mcp.tool()
def get_table_schema(
    client_id: str,
    table_name: str,
) -> list[dict]:
    """
    Get the schema of a table in the client's dataset.

    Args:
        client_id: Client identifier
        table_name: sessions, touchpoints, events, anon_events or conversions

    Returns:
        List of field definitions (name, type, mode, description)
    """
    from halotrack.bigquery import TenantBigQueryClient

    client = TenantBigQueryClient(client_id=client_id)
    return client.get_table_schema(table_name)


# =============================================================================
# Client Registry Tools
# =============================================================================


@mcp.tool()
def get_client(client_id: str) -> dict | None:
    """
    Get a client's configuration from the registry. Credentials are masked.

    Returns:
        Client configuration or None if not found
    """
    client = get_backend().registry.get_client(client_id)
    return client.to_dict() if client else None


# =============================================================================
# Resources
# =============================================================================


@mcp.resource("client://{client_id}")
def get_client_resource(client_id: str) -> str:
    """Get client configuration as a resource."""
    client = get_backend().registry.get_client(client_id)

    if client:
        destinations = [
            name
            for name, configured in (
                ("facebook", client.settings.facebook),
                ("google", client.settings.google),
            )
            if configured
        ]
        return f"""Client: {client.name}
ID: {client.client_id}
Dataset: {client.dataset}
Status: {client.status.value}
Currency: {client.settings.currency}
Forwarding: {', '.join(destinations) if destinations else 'None'}
"""
    return f"Client {client_id} not found"


@mcp.resource("models://list")
def list_models_resource() -> str:
    """List attribution models with their credit rules."""
    from halotrack.conversions import AttributionModel
    from halotrack.conversions.attribution import describe_model

    return "\n".join(
        f"- {d['model']}: {d['description']}" for d in (describe_model(m) for m in AttributionModel)
    )


# =============================================================================
# Prompts
# =============================================================================


@mcp.prompt()
def compare_attribution_models(client_id: str, start_date: str, end_date: str) -> str:
    """
    Prompt for comparing channel credit across attribution models.

    Args:
        client_id: Client to analyze
        start_date: First day, YYYY-MM-DD
        end_date: Last day, YYYY-MM-DD
    """
    return f"""Compare marketing channel performance for client "{client_id}" from {start_date} to {end_date}.

Steps:
1. Run pipeline_report with model="last_touch", "first_touch" and "linear"
2. Run pipeline_report with model="time_decay" for the same range
3. For each channel, compare total credit and weighted value across models
4. Flag channels that introduce customers (strong first touch) versus channels that close them (strong last touch)

Summarize which channels are over- or under-credited by last-touch reporting.
"""


@mcp.prompt()
def monthly_attribution_report(client_id: str, month: str) -> str:
    """Prompt for a monthly attribution summary."""
    return f"""Prepare a monthly attribution report for client "{client_id}" for {month} (YYYY-MM).

Steps:
1. Get revenue_summary for the month
2. Get visitor_analytics for the month
3. Get pipeline_report with the linear model for leads (conversion_type="lead")
4. Compare the attribution rate and average days to convert with the previous month

Include:
- Revenue and share of revenue resolved to a visitor
- Top channels by visitors, bounce rate and weighted pipeline value
- Lead win rate by channel
- Recommendations for next month
"""


# =============================================================================
# Entry Point
# =============================================================================


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
