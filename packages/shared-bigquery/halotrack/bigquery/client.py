"""
TenantBigQueryClient - BigQuery client scoped to one HaloTrack client.

Provides:
- Dataset-per-client isolation (halotrack_{client_id})
- Query validation (read-only unless writes are explicitly allowed)
- Typed query parameters, including timestamps and arrays
- Table provisioning for the tracking and conversion tables
- Cost estimation via dry-run queries
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from google.cloud import bigquery
from pydantic import BaseModel

from halotrack.bigquery.validation import QueryValidator

DATASET_PREFIX = "halotrack_"

QueryParameter = bigquery.ScalarQueryParameter | bigquery.ArrayQueryParameter


class BigQueryConfig(BaseModel):
    """Configuration for BigQuery client."""

    project_id: str | None = None
    credentials_path: str | None = None
    location: str = "EU"
    max_results: int = 10_000
    timeout: int = 300  # 5 minutes

    @classmethod
    def from_env(cls) -> BigQueryConfig:
        """Load configuration from environment variables."""
        return cls(
            project_id=os.getenv("GCP_PROJECT_ID") or os.getenv("HALOTRACK_PROJECT_ID"),
            credentials_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            location=os.getenv("HALOTRACK_BQ_LOCATION", "EU"),
        )


@dataclass
class QueryResult:
    """Result of a BigQuery query."""

    rows: list[dict[str, Any]]
    total_rows: int
    bytes_processed: int
    cache_hit: bool
    affected_rows: int = 0  # DML statements only


class TenantBigQueryClient:
    """
    BigQuery client with automatic tenant isolation.

    Each client gets their own dataset: halotrack_{client_id}. Table names in
    SQL are written as `{dataset}.table` and expanded with `table_ref()`.

    Example:
        bq = TenantBigQueryClient(client_id="acme")
        result = bq.query(
            f"SELECT session_id FROM `{bq.table_ref('sessions')}` WHERE email = @email LIMIT 1",
            {"email": "jane@example.com"},
        )
    """

    def __init__(
        self,
        client_id: str,
        config: BigQueryConfig | None = None,
        client: bigquery.Client | None = None,
    ):
        self.client_id = QueryValidator.validate_client_id(client_id)
        self.config = config or BigQueryConfig.from_env()
        self._client = client

    @property
    def dataset_id(self) -> str:
        """Get the client's dataset ID."""
        return f"{DATASET_PREFIX}{self.client_id}"

    @property
    def client(self) -> bigquery.Client:
        """Lazy initialization of BigQuery client."""
        if self._client is None:
            self._client = bigquery.Client(
                project=self.config.project_id,
                location=self.config.location,
            )
        return self._client

    def table_ref(self, table: str) -> str:
        """Fully-qualified reference to a table in the client's dataset."""
        table = QueryValidator.sanitize_identifier(table)
        if self.config.project_id:
            return f"{self.config.project_id}.{self.dataset_id}.{table}"
        return f"{self.dataset_id}.{table}"

    def query(
        self,
        sql: str,
        params: dict[str, Any] | list[QueryParameter] | None = None,
        max_results: int | None = None,
        allow_writes: bool = False,
    ) -> QueryResult:
        """
        Execute a query with automatic tenant isolation.

        Args:
            sql: SQL query string
            params: Named parameters, as plain values (types inferred) or
                prebuilt query parameters
            max_results: Maximum rows to return (default: 10,000)
            allow_writes: Permit DML (used by the stores, never by ad-hoc queries)

        Returns:
            QueryResult with rows, metadata, and cost info

        Raises:
            ValueError: If the query fails validation
        """
        QueryValidator.validate(sql, allow_writes=allow_writes)
        QueryValidator.validate_tenant_scope(sql, self.dataset_id)

        job_config = bigquery.QueryJobConfig()
        if params:
            job_config.query_parameters = self._parameters(params)

        query_job = self.client.query(sql, job_config=job_config)
        result = query_job.result(
            max_results=max_results or self.config.max_results,
            timeout=self.config.timeout,
        )

        rows = [dict(row.items()) for row in result]

        return QueryResult(
            rows=rows,
            total_rows=result.total_rows or len(rows),
            bytes_processed=query_job.total_bytes_processed or 0,
            cache_hit=query_job.cache_hit or False,
            affected_rows=query_job.num_dml_affected_rows or 0,
        )

    async def query_async(
        self,
        sql: str,
        params: dict[str, Any] | list[QueryParameter] | None = None,
        max_results: int | None = None,
    ) -> QueryResult:
        """Async wrapper for query execution."""
        return await asyncio.to_thread(self.query, sql, params, max_results)

    def insert_rows(self, table: str, rows: list[dict[str, Any]]) -> None:
        """Stream rows into an append-only table.

        Raises:
            RuntimeError: If BigQuery rejects any row
        """
        if not rows:
            return
        errors = self.client.insert_rows_json(self.table_ref(table), rows)
        if errors:
            raise RuntimeError(f"Failed to insert rows into {table}: {errors}")

    def ensure_dataset(self, tables: dict[str, str]) -> None:
        """Create the client's dataset and tables if missing.

        Args:
            tables: Table name to CREATE TABLE IF NOT EXISTS statement, with
                a `{table}` placeholder for the fully-qualified name
        """
        dataset = bigquery.Dataset(f"{self.client.project}.{self.dataset_id}")
        dataset.location = self.config.location
        self.client.create_dataset(dataset, exists_ok=True)
        for name, ddl in tables.items():
            self.client.query(ddl.format(table=self.table_ref(name))).result()

    def estimate_cost(self, sql: str) -> dict[str, Any]:
        """
        Estimate query cost via dry-run.

        Returns:
            Dict with bytes_processed, estimated_cost_usd, is_cached
        """
        QueryValidator.validate(sql)
        job_config = bigquery.QueryJobConfig(dry_run=True, use_query_cache=False)
        query_job = self.client.query(sql, job_config=job_config)

        bytes_processed = query_job.total_bytes_processed or 0
        # BigQuery on-demand pricing: $6.25 per TB
        cost_per_tb = 6.25
        estimated_cost = (bytes_processed / (1024**4)) * cost_per_tb

        return {
            "bytes_processed": bytes_processed,
            "estimated_cost_usd": round(estimated_cost, 6),
            "is_cached": query_job.cache_hit or False,
        }

    def get_table_schema(self, table_id: str) -> list[dict[str, Any]]:
        """
        Get schema for a table in the client's dataset.

        Args:
            table_id: Table name (without dataset prefix)

        Returns:
            List of field definitions
        """
        table = self.client.get_table(self.table_ref(table_id))

        return [
            {
                "name": field.name,
                "type": field.field_type,
                "mode": field.mode,
                "description": field.description,
            }
            for field in table.schema
        ]

    def _parameters(self, params: dict[str, Any] | list[QueryParameter]) -> list[QueryParameter]:
        if isinstance(params, list):
            return params
        return [self._parameter(name, value) for name, value in params.items()]

    def _parameter(self, name: str, value: Any) -> QueryParameter:
        """Build a query parameter, inferring the BigQuery type from the value."""
        if isinstance(value, list | tuple | set):
            values = list(value)
            element_type = self._infer_type(values[0]) if values else "STRING"
            return bigquery.ArrayQueryParameter(name, element_type, values)
        return bigquery.ScalarQueryParameter(name, self._infer_type(value), value)

    def _infer_type(self, value: Any) -> str:
        """Infer BigQuery type from Python value."""
        if isinstance(value, bool):
            return "BOOL"
        if isinstance(value, int):
            return "INT64"
        if isinstance(value, float):
            return "FLOAT64"
        if isinstance(value, datetime):
            return "TIMESTAMP"
        if isinstance(value, date):
            return "DATE"
        return "STRING"
