"""
ClientRegistry - HaloTrack tenants and their per-client settings.

Each client record carries the settings the ingestion path needs (currency,
timezone, ad-platform credentials). Settings are loaded here and passed
explicitly into the services; nothing reads tenant configuration from
process-wide state.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import lru_cache
from typing import Any

from google.cloud import bigquery

from halotrack.bigquery.client import DATASET_PREFIX
from halotrack.bigquery.validation import QueryValidator
from halotrack.forwarding.config import ClientSettings

logger = logging.getLogger(__name__)


class ClientStatus(str, Enum):
    """Client account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass
class Client:
    """A tracked website owner (tenant)."""

    client_id: str
    name: str
    gcp_project_id: str
    dataset: str = ""
    status: ClientStatus = ClientStatus.ACTIVE
    site_host: str | None = None
    settings: ClientSettings = field(default_factory=ClientSettings)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.dataset:
            self.dataset = f"{DATASET_PREFIX}{self.client_id}"

    @property
    def full_dataset_id(self) -> str:
        """Get fully-qualified dataset ID."""
        return f"{self.gcp_project_id}.{self.dataset}"

    def to_dict(self) -> dict[str, Any]:
        """Public view; credentials are masked."""
        return {
            "client_id": self.client_id,
            "name": self.name,
            "dataset": self.dataset,
            "status": self.status.value,
            "site_host": self.site_host,
            "settings": self.settings.to_dict(),
        }


class ClientRegistry:
    """
    Registry for managing client configurations.

    Example:
        registry = ClientRegistry()
        client = registry.get_client("acme")
        ingestor = ConversionIngestor(sessions, conversions, client.settings)
    """

    REGISTRY_DATASET = "halotrack_registry"
    REGISTRY_TABLE = "clients"

    def __init__(
        self,
        registry_project_id: str | None = None,
        client: bigquery.Client | None = None,
    ):
        self.registry_project_id = registry_project_id or os.getenv(
            "HALOTRACK_REGISTRY_PROJECT_ID",
            os.getenv("GCP_PROJECT_ID"),
        )
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        """Lazy initialization of BigQuery client."""
        if self._client is None:
            self._client = bigquery.Client(project=self.registry_project_id)
        return self._client

    @property
    def table_ref(self) -> str:
        """Get fully-qualified registry table reference."""
        return f"{self.registry_project_id}.{self.REGISTRY_DATASET}.{self.REGISTRY_TABLE}"

    @lru_cache(maxsize=100)
    def get_client(self, client_id: str) -> Client | None:
        """
        Get client configuration by ID.

        Suspended clients are treated as unknown.
        """
        query = f"""
            SELECT *
            FROM `{self.table_ref}`
            WHERE client_id = @client_id
              AND status != 'suspended'
            LIMIT 1
        """

        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            ]
        )

        result = self.client.query(query, job_config=job_config).result()

        for row in result:
            return self._row_to_client(dict(row.items()))

        return None

    def list_clients(self, status: ClientStatus = ClientStatus.ACTIVE) -> list[Client]:
        query = f"""
            SELECT *
            FROM `{self.table_ref}`
            WHERE status = @status
            ORDER BY name
        """

        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("status", "STRING", status.value),
            ]
        )

        result = self.client.query(query, job_config=job_config).result()

        return [self._row_to_client(dict(row.items())) for row in result]

    def add_client(self, client: Client) -> Client:
        """
        Add a new client to the registry.

        Raises:
            ValueError: If the client id is invalid
            RuntimeError: If the insert is rejected
        """
        QueryValidator.validate_client_id(client.client_id)
        now = datetime.now(UTC)
        row = {
            "client_id": client.client_id,
            "name": client.name,
            "gcp_project_id": client.gcp_project_id,
            "dataset": client.dataset,
            "status": client.status.value,
            "site_host": client.site_host,
            "settings": json.dumps(client.settings.to_dict(include_secrets=True)),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }

        errors = self.client.insert_rows_json(self.table_ref, [row])
        if errors:
            raise RuntimeError(f"Failed to insert client: {errors}")

        self.get_client.cache_clear()
        logger.info(f"Registered client {client.client_id}")

        client.created_at = now
        client.updated_at = now
        return client

    def update_settings(self, client_id: str, settings: ClientSettings) -> Client | None:
        """
        Replace a client's settings.

        Returns:
            Updated Client or None if not found
        """
        query = f"""
            UPDATE `{self.table_ref}`
            SET settings = @settings, updated_at = CURRENT_TIMESTAMP()
            WHERE client_id = @client_id
        """

        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
                bigquery.ScalarQueryParameter(
                    "settings", "STRING", json.dumps(settings.to_dict(include_secrets=True))
                ),
            ]
        )
        self.client.query(query, job_config=job_config).result()

        self.get_client.cache_clear()
        return self.get_client(client_id)

    def _row_to_client(self, row: dict[str, Any]) -> Client:
        """Convert BigQuery row to Client object."""
        settings = row.get("settings")
        if isinstance(settings, str):
            settings = json.loads(settings)

        return Client(
            client_id=row["client_id"],
            name=row["name"],
            gcp_project_id=row["gcp_project_id"],
            dataset=row.get("dataset") or "",
            status=ClientStatus(row["status"]),
            site_host=row.get("site_host"),
            settings=ClientSettings.from_dict(settings),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
