"""
Integration tests against real BigQuery.

Prerequisites:
- GCP authentication via `gcloud auth application-default login`
- GCP_PROJECT_ID pointing at a project where datasets may be created

The tests provision halotrack_<HALOTRACK_TEST_CLIENT> (default: itest) and
write uniquely keyed rows into it.

Run with: pytest packages/shared-bigquery/tests/test_integration_bigquery.py -m integration -v
"""

import os
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from halotrack.bigquery import (
    BigQueryConfig,
    BigQueryConversionStore,
    BigQuerySessionStore,
    TenantBigQueryClient,
    provision_client,
)
from halotrack.conversions.schema import Conversion, LeadStatus
from halotrack.tracking.schema import Session, TouchData

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.getenv("GCP_PROJECT_ID")
        or (
            not os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
            and not os.path.exists(os.path.expanduser("~/.config/gcloud/application_default_credentials.json"))
        ),
        reason="GCP credentials not available",
    ),
]

CLIENT_ID = os.getenv("HALOTRACK_TEST_CLIENT", "itest")


@pytest.fixture(scope="module")
def config():
    config = BigQueryConfig.from_env()
    provision_client(CLIENT_ID, config=config)
    return config


class TestTenantClientIntegration:
    def test_simple_query(self, config):
        result = TenantBigQueryClient(CLIENT_ID, config=config).query("SELECT 1 AS n LIMIT 1")

        assert result.rows == [{"n": 1}]


class TestStoresIntegration:
    def test_session_insert_update_get(self, config):
        store = BigQuerySessionStore(config=config)
        session_id = str(uuid.uuid4())
        now = datetime.now(UTC)
        store.insert(
            Session(
                client_id=CLIENT_ID,
                session_id=session_id,
                first_touch=TouchData(source="google", medium="cpc", timestamp=now),
                last_touch=TouchData(source="google", medium="cpc", timestamp=now),
            )
        )

        assert store.update(CLIENT_ID, session_id, {"email": "itest@example.com", "updated_at": now})

        session = store.get(CLIENT_ID, session_id)
        assert session.email == "itest@example.com"
        assert session.first_touch.source == "google"

    def test_conversion_replay_keeps_status(self, config):
        store = BigQueryConversionStore(config=config)
        external_id = str(uuid.uuid4())
        store.upsert(Conversion(client_id=CLIENT_ID, external_id=external_id, platform="form", value=10.0))
        store.update_status(CLIENT_ID, external_id, "form", LeadStatus.LOST)

        store.upsert(Conversion(client_id=CLIENT_ID, external_id=external_id, platform="form", value=12.0))

        now = datetime.now(UTC)
        stored = [
            c
            for c in store.list_in_range(CLIENT_ID, now - timedelta(hours=1), now + timedelta(hours=1))
            if c.external_id == external_id
        ]
        assert len(stored) == 1
        assert stored[0].value == 12.0
        assert stored[0].status == LeadStatus.LOST
