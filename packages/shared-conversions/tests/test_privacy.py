"""Tests for customer data erasure."""

import pytest

from halotrack.conversions.privacy import erase_customer_data
from halotrack.conversions.schema import Conversion, ConversionType


@pytest.fixture
def populated(session_store, conversion_store, make_session):
    session_store.insert(make_session("sess-1", email="jane@example.com"))
    session_store.insert(make_session("sess-2", email="other@example.com"))
    conversion_store.upsert(
        Conversion(client_id="acme", external_id="1042", email="jane@example.com", phone="420777123456", value=99.0)
    )
    conversion_store.upsert(
        Conversion(
            client_id="acme",
            external_id="L-1",
            platform="form",
            conversion_type=ConversionType.LEAD,
            email="jane@example.com",
            name="Jane Doe",
            company="Doe Ltd",
            message="Call me",
        )
    )
    return session_store, conversion_store


class TestEraseCustomerData:
    def test_deletes_sessions_and_anonymizes_conversions(self, populated):
        sessions, conversions = populated

        result = erase_customer_data(sessions, conversions, "acme", " Jane@Example.com ")

        assert result.to_dict() == {"success": True, "sessions_deleted": 1, "conversions_anonymized": 2}
        assert sessions.get("acme", "sess-1") is None
        assert sessions.get("acme", "sess-2") is not None

    def test_anonymized_fields(self, populated):
        sessions, conversions = populated

        erase_customer_data(sessions, conversions, "acme", "jane@example.com")

        order = conversions.conversions[("acme", "1042", "custom")]
        lead = conversions.conversions[("acme", "L-1", "form")]
        assert order.email is None
        assert order.phone is None
        assert order.value == 99.0
        assert lead.name is None
        assert lead.company is None
        assert lead.message is None
        assert lead.attribution_data["deleted"] is True
        assert "deletion_date" in lead.attribution_data

    def test_other_clients_untouched(self, populated):
        sessions, conversions = populated

        result = erase_customer_data(sessions, conversions, "globex", "jane@example.com")

        assert result.sessions_deleted == 0
        assert result.conversions_anonymized == 0

    @pytest.mark.parametrize("email", ["", "   ", None])
    def test_email_required(self, populated, email):
        sessions, conversions = populated

        with pytest.raises(ValueError, match="Email required"):
            erase_customer_data(sessions, conversions, "acme", email)
