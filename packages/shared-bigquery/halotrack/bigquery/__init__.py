"""
HaloTrack BigQuery - per-client datasets, client registry and store backends.

Usage:
    from halotrack.bigquery import BigQuerySessionStore, ClientRegistry

    registry = ClientRegistry()
    client = registry.get_client("acme")

    sessions = BigQuerySessionStore()
    session = sessions.get("acme", "5f0c...")
"""

from halotrack.bigquery.client import BigQueryConfig, QueryResult, TenantBigQueryClient
from halotrack.bigquery.registry import Client, ClientRegistry, ClientStatus
from halotrack.bigquery.stores import (
    TABLES,
    BigQueryAdSpendStore,
    BigQueryConversionStore,
    BigQueryEventStore,
    BigQuerySessionStore,
    BigQueryTouchpointStore,
    provision_client,
)
from halotrack.bigquery.validation import QueryValidator

__all__ = [
    "TenantBigQueryClient",
    "BigQueryConfig",
    "QueryResult",
    "QueryValidator",
    "ClientRegistry",
    "Client",
    "ClientStatus",
    "BigQuerySessionStore",
    "BigQueryTouchpointStore",
    "BigQueryEventStore",
    "BigQueryConversionStore",
    "BigQueryAdSpendStore",
    "TABLES",
    "provision_client",
]
