"""Fixtures for BigQuery tests."""

from unittest.mock import MagicMock, Mock

import pytest

from halotrack.bigquery.client import BigQueryConfig


@pytest.fixture
def query_job():
    """Factory for mock QueryJobs whose result() yields dict rows."""

    def _make(rows=(), bytes_processed=1000, cache_hit=False, affected_rows=None):
        mock_rows = []
        for row in rows:
            mock_row = Mock()
            mock_row.items.return_value = list(row.items())
            mock_rows.append(mock_row)

        mock_result = MagicMock()
        mock_result.__iter__.return_value = iter(mock_rows)
        mock_result.total_rows = len(mock_rows)

        mock_job = MagicMock()
        mock_job.result.return_value = mock_result
        mock_job.total_bytes_processed = bytes_processed
        mock_job.cache_hit = cache_hit
        mock_job.num_dml_affected_rows = affected_rows
        return mock_job

    return _make


@pytest.fixture
def bq(query_job):
    """Mock google.cloud.bigquery.Client returning empty results."""
    client = MagicMock()
    client.project = "test-project"
    client.query.return_value = query_job()
    client.insert_rows_json.return_value = []
    return client


@pytest.fixture
def bq_config():
    return BigQueryConfig(project_id="test-project")
