"""Fixtures for MCP server tests."""

from unittest.mock import Mock, patch

import pytest

from halotrack.bigquery.registry import Client
from halotrack.conversions import AttributionConfig
from halotrack.forwarding import ClientSettings
from halotrack_mcp.server import Backend


@pytest.fixture
def acme():
    return Client(
        client_id="acme",
        name="Acme Coffee",
        gcp_project_id="halotrack-prod",
        site_host="acme.example.com",
        settings=ClientSettings(currency="CZK"),
    )


@pytest.fixture
def registry(acme):
    registry = Mock()
    registry.get_client.side_effect = lambda client_id: acme if client_id == "acme" else None
    return registry


@pytest.fixture
def backend(session_store, touchpoint_store, event_store, conversion_store, spend_store, registry):
    """Patch the server's backend with in-memory stores."""
    backend = Backend(
        sessions=session_store,
        touchpoints=touchpoint_store,
        events=event_store,
        conversions=conversion_store,
        registry=registry,
        config=AttributionConfig(),
        spend=spend_store,
    )
    with patch("halotrack_mcp.server.get_backend", return_value=backend):
        yield backend
