"""Fixtures for forwarding tests."""

from datetime import UTC, datetime
from unittest.mock import Mock

import httpx
import pytest

from halotrack.conversions.schema import Conversion, ConversionType, OrderItem
from halotrack.forwarding import ClientSettings, FacebookSettings, GoogleSettings, get_registry
from halotrack.tracking.schema import ClickIds, DeviceData, Session, TouchData


@pytest.fixture
def facebook_settings():
    return FacebookSettings(pixel_id="123456", access_token="EAAB-token")


@pytest.fixture
def google_settings():
    return GoogleSettings(measurement_id="G-TEST123", api_secret="s3cr3t")


@pytest.fixture
def client_settings(facebook_settings, google_settings):
    return ClientSettings(facebook=facebook_settings, google=google_settings)


@pytest.fixture
def http_client():
    """Mock httpx.Client answering 200 with an empty JSON body."""
    client = Mock(spec=httpx.Client)
    client.post.return_value = httpx.Response(200, json={})
    return client


@pytest.fixture
def session():
    touch = TouchData(source="facebook", medium="cpc", landing="/pricing?utm_source=facebook")
    return Session(
        client_id="acme",
        session_id="sess-1",
        first_touch=touch,
        last_touch=touch,
        click_ids=ClickIds(fbclid="abc", fbc="fb.1.1735689600000.abc", fbp="fb.1.1735689600000.42"),
        device=DeviceData(user_agent="Mozilla/5.0", country="CZ", city="Praha 1"),
    )


@pytest.fixture
def purchase():
    return Conversion(
        client_id="acme",
        external_id="1042",
        platform="woocommerce",
        value=1250.0,
        email=" Jane@Example.com ",
        phone="+420 777 123 456",
        items=[OrderItem(id="11", name="Espresso beans", price=575.5, quantity=2)],
        event_id="acme_1042_1735689600000",
        created_at=datetime(2025, 1, 15, 10, 30, tzinfo=UTC),
    )


@pytest.fixture
def lead():
    return Conversion(
        client_id="acme",
        external_id="L-100",
        platform="form",
        conversion_type=ConversionType.LEAD,
        email="lead@example.com",
        name="Ada King Lovelace",
        form_type="demo_request",
        consent_given=True,
        event_id="acme_lead_L-100_1735689600000",
    )


@pytest.fixture
def fresh_registry():
    """The global registry, emptied for the test and restored afterwards."""
    registry = get_registry()
    saved = dict(registry._forwarders)
    registry._forwarders.clear()
    yield registry
    registry._forwarders.clear()
    registry._forwarders.update(saved)
