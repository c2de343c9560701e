"""BigQuery-backed session, touchpoint, event, conversion and ad spend stores.

Tables live in the client's dataset (halotrack_{client_id}):

    sessions      one row per (client_id, session_id), mutated by DML
    touchpoints   append-only journal, streamed
    events        page views and custom events, streamed
    anon_events   consent-denied page views, streamed
    conversions   leads and orders, MERGE upsert by (client_id, external_id, platform)
    ad_spend      daily spend, MERGE upsert by (client_id, date, source, medium, campaign)

Rows that are later updated (sessions, conversions, ad_spend) are written with DML
rather than streaming inserts; streamed rows cannot be modified while they
sit in the streaming buffer.

Every Google API failure is re-raised as `StoreError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from halotrack.bigquery.client import BigQueryConfig, QueryResult, TenantBigQueryClient
from halotrack.conversions.exceptions import StoreError
from halotrack.conversions.schema import Conversion, ConversionType, LeadStatus
from halotrack.conversions.spend import AdSpend, spend_changes
from halotrack.tracking.schema import (
    CLICK_ID_FIELDS,
    AnonymousEvent,
    ClickIds,
    ConsentStatus,
    DeviceData,
    Session,
    Touchpoint,
    TouchData,
    TrackedEvent,
)

logger = logging.getLogger(__name__)

TOUCH_FIELDS = ("source", "medium", "campaign", "term", "content", "referrer", "referrer_full", "landing")
DEVICE_FIELDS = (
    "user_agent",
    "device_type",
    "browser",
    "browser_version",
    "os",
    "os_version",
    "ip_hash",
    "country",
    "city",
    "region",
    "language",
)


def _touch_columns(prefix: str) -> dict[str, str]:
    columns = {f"{prefix}_{name}": "STRING" for name in TOUCH_FIELDS}
    columns[f"{prefix}_timestamp"] = "TIMESTAMP"
    return columns


SESSION_COLUMNS: dict[str, str] = {
    "session_id": "STRING",
    "client_id": "STRING",
    **_touch_columns("ft"),
    **_touch_columns("lt"),
    **{name: "STRING" for name in CLICK_ID_FIELDS},
    **{name: "STRING" for name in DEVICE_FIELDS},
    "email": "STRING",
    "phone": "STRING",
    "external_id": "STRING",
    "consent_status": "STRING",
    "custom_params": "JSON",
    "created_at": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
}

TOUCHPOINT_COLUMNS: dict[str, str] = {
    "client_id": "STRING",
    "session_id": "STRING",
    "touchpoint_number": "INT64",
    "timestamp": "TIMESTAMP",
    "source": "STRING",
    "medium": "STRING",
    "campaign": "STRING",
    "term": "STRING",
    "content": "STRING",
    "referrer": "STRING",
    "landing": "STRING",
    **{name: "STRING" for name in CLICK_ID_FIELDS},
}

EVENT_COLUMNS: dict[str, str] = {
    "client_id": "STRING",
    "session_id": "STRING",
    "event_name": "STRING",
    "properties": "JSON",
    "page_url": "STRING",
    "created_at": "TIMESTAMP",
}

ANON_EVENT_COLUMNS: dict[str, str] = {
    "client_id": "STRING",
    "event_type": "STRING",
    "utm_source": "STRING",
    "utm_medium": "STRING",
    "utm_campaign": "STRING",
    "utm_term": "STRING",
    "utm_content": "STRING",
    "referrer_domain": "STRING",
    "page_path": "STRING",
    "created_at": "TIMESTAMP",
}

CONVERSION_COLUMNS: dict[str, str] = {
    "conversion_id": "STRING",
    "client_id": "STRING",
    "external_id": "STRING",
    "platform": "STRING",
    "conversion_type": "STRING",
    "value": "FLOAT64",
    "subtotal": "FLOAT64",
    "tax": "FLOAT64",
    "shipping": "FLOAT64",
    "currency": "STRING",
    "email": "STRING",
    "phone": "STRING",
    "customer_id": "STRING",
    "session_id": "STRING",
    "name": "STRING",
    "company": "STRING",
    "form_type": "STRING",
    "message": "STRING",
    "consent_given": "BOOL",
    "ip_address": "STRING",
    "items": "JSON",
    "custom_fields": "JSON",
    "status": "STRING",
    "deal_value": "FLOAT64",
    "created_at": "TIMESTAMP",
    "match_type": "STRING",
    "attribution_data": "JSON",
    "days_to_convert": "INT64",
    "event_id": "STRING",
    "sent_to_facebook": "BOOL",
    "sent_to_google": "BOOL",
    "updated_at": "TIMESTAMP",
}

AD_SPEND_COLUMNS: dict[str, str] = {
    "spend_id": "STRING",
    "client_id": "STRING",
    "date": "DATE",
    "source": "STRING",
    "medium": "STRING",
    "campaign": "STRING",
    "spend": "FLOAT64",
    "currency": "STRING",
    "created_at": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
}

# Preserved when a webhook is replayed
CONVERSION_KEEP_ON_UPSERT = frozenset(
    {"conversion_id", "status", "deal_value", "sent_to_facebook", "sent_to_google"}
)


def create_table_sql(columns: dict[str, str], partition_by: str, cluster_by: Sequence[str]) -> str:
    """CREATE TABLE IF NOT EXISTS statement with a `{table}` placeholder."""
    body = ",\n    ".join(f"{name} {bq_type}" for name, bq_type in columns.items())
    return (
        f"CREATE TABLE IF NOT EXISTS `{{table}}` (\n    {body}\n)\n"
        f"PARTITION BY DATE({partition_by})\n"
        f"CLUSTER BY {', '.join(cluster_by)}"
    )


TABLES: dict[str, str] = {
    "sessions": create_table_sql(SESSION_COLUMNS, "created_at", ["client_id", "session_id"]),
    "touchpoints": create_table_sql(TOUCHPOINT_COLUMNS, "timestamp", ["client_id", "session_id"]),
    "events": create_table_sql(EVENT_COLUMNS, "created_at", ["client_id", "event_name"]),
    "anon_events": create_table_sql(ANON_EVENT_COLUMNS, "created_at", ["client_id"]),
    "conversions": create_table_sql(CONVERSION_COLUMNS, "created_at", ["client_id", "external_id"]),
    "ad_spend": create_table_sql(AD_SPEND_COLUMNS, "created_at", ["client_id", "date"]),
}


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise BigQuery failures as StoreError."""
    try:
        yield
    except (GoogleAPIError, RuntimeError) as e:
        logger.error(f"BigQuery {action} failed: {type(e).__name__}")
        raise StoreError(f"BigQuery {action} failed: {e}") from e


def _param(name: str, bq_type: str, value: Any) -> bigquery.ScalarQueryParameter:
    """Typed parameter; JSON values travel as strings wrapped in PARSE_JSON."""
    if bq_type == "JSON":
        return bigquery.ScalarQueryParameter(name, "STRING", None if value is None else json.dumps(value))
    return bigquery.ScalarQueryParameter(name, bq_type, value)


def _placeholder(name: str, bq_type: str) -> str:
    return f"PARSE_JSON(@{name})" if bq_type == "JSON" else f"@{name}"


def _json_value(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class BigQueryStore:
    """Shared plumbing: one TenantBigQueryClient per client over one BigQuery client."""

    table: str

    def __init__(
        self,
        config: BigQueryConfig | None = None,
        client: bigquery.Client | None = None,
    ):
        self.config = config or BigQueryConfig.from_env()
        self._client = client
        self._tenants: dict[str, TenantBigQueryClient] = {}

    def tenant(self, client_id: str) -> TenantBigQueryClient:
        if client_id not in self._tenants:
            tenant = TenantBigQueryClient(client_id, config=self.config, client=self._client)
            if self._client is None:
                self._client = tenant.client
            self._tenants[client_id] = tenant
        return self._tenants[client_id]

    def ensure_table(self, client_id: str) -> None:
        """Create the client's dataset and this store's table."""
        with store_errors(f"provisioning {self.table}"):
            self.tenant(client_id).ensure_dataset({self.table: TABLES[self.table]})

    def _run(
        self,
        client_id: str,
        sql: str,
        params: list[bigquery.ScalarQueryParameter | bigquery.ArrayQueryParameter],
        write: bool = False,
    ) -> QueryResult:
        tenant = self.tenant(client_id)
        with store_errors(f"query on {self.table}"):
            return tenant.query(
                sql.format(table=tenant.table_ref(self.table)),
                params,
                allow_writes=write,
            )

    def _stream(self, client_id: str, rows: list[dict[str, Any]]) -> None:
        with store_errors(f"insert into {self.table}"):
            self.tenant(client_id).insert_rows(self.table, rows)


class BigQuerySessionStore(BigQueryStore):
    """Sessions table; implements halotrack.tracking.store.SessionStore."""

    table = "sessions"

    SELECT_SQL = "SELECT * FROM `{table}` WHERE client_id = @client_id AND {column} = @value"

    def get(self, client_id: str, session_id: str) -> Session | None:
        return self._find(client_id, "session_id", session_id)

    def find_by_email(self, client_id: str, email: str) -> Session | None:
        return self._find(client_id, "email", email)

    def find_by_phone(self, client_id: str, phone: str) -> Session | None:
        return self._find(client_id, "phone", phone)

    def find_by_external_id(self, client_id: str, external_id: str) -> Session | None:
        return self._find(client_id, "external_id", external_id)

    def list_by_ids(self, client_id: str, session_ids: Sequence[str]) -> list[Session]:
        if not session_ids:
            return []
        sql = "SELECT * FROM `{table}` WHERE client_id = @client_id AND session_id IN UNNEST(@session_ids)"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ArrayQueryParameter("session_ids", "STRING", list(session_ids)),
        ]
        result = self._run(client_id, sql, params)
        return [row_to_session(row) for row in result.rows]

    def insert(self, session: Session) -> None:
        row = session_to_row(session)
        columns = ", ".join(SESSION_COLUMNS)
        values = ", ".join(_placeholder(name, bq_type) for name, bq_type in SESSION_COLUMNS.items())
        sql = f"INSERT INTO `{{table}}` ({columns}) VALUES ({values})"
        params = [_param(name, bq_type, row[name]) for name, bq_type in SESSION_COLUMNS.items()]
        self._run(session.client_id, sql, params, write=True)

    def update(self, client_id: str, session_id: str, changes: dict[str, Any]) -> bool:
        """Apply a partial update.

        Raises:
            ValueError: For unknown keys, or an attempt to change first_touch
                or device data (both are set once at creation).
        """
        columns = session_changes_to_columns(changes)
        if not columns:
            return False

        assignments = ", ".join(
            f"{name} = {_placeholder(f'v_{name}', SESSION_COLUMNS[name])}" for name in columns
        )
        sql = f"UPDATE `{{table}}` SET {assignments} WHERE client_id = @client_id AND session_id = @session_id"
        params = [_param(f"v_{name}", SESSION_COLUMNS[name], value) for name, value in columns.items()]
        params += [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("session_id", "STRING", session_id),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows > 0

    def delete_by_email(self, client_id: str, email: str) -> int:
        sql = "DELETE FROM `{table}` WHERE client_id = @client_id AND email = @email"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("email", "STRING", email),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows

    def _find(self, client_id: str, column: str, value: str) -> Session | None:
        # Most recently updated wins when several sessions share the value
        sql = self.SELECT_SQL.replace("{column}", column) + " ORDER BY updated_at DESC LIMIT 1"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("value", "STRING", value),
        ]
        result = self._run(client_id, sql, params)
        return row_to_session(result.rows[0]) if result.rows else None


class BigQueryTouchpointStore(BigQueryStore):
    """Touchpoint journal; implements halotrack.tracking.store.TouchpointStore."""

    table = "touchpoints"

    def count_for_session(self, client_id: str, session_id: str) -> int:
        sql = "SELECT COUNT(*) AS n FROM `{table}` WHERE client_id = @client_id AND session_id = @session_id"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("session_id", "STRING", session_id),
        ]
        result = self._run(client_id, sql, params)
        return int(result.rows[0]["n"]) if result.rows else 0

    def append(self, touchpoint: Touchpoint) -> None:
        row = {
            "client_id": touchpoint.client_id,
            "session_id": touchpoint.session_id,
            "touchpoint_number": touchpoint.touchpoint_number,
            "timestamp": _iso(touchpoint.timestamp),
            "source": touchpoint.source,
            "medium": touchpoint.medium,
            "campaign": touchpoint.campaign,
            "term": touchpoint.term,
            "content": touchpoint.content,
            "referrer": touchpoint.referrer,
            "landing": touchpoint.landing,
            **touchpoint.click_ids.to_dict(),
        }
        self._stream(touchpoint.client_id, [row])

    def list_by_session_ids(self, client_id: str, session_ids: Sequence[str]) -> list[Touchpoint]:
        if not session_ids:
            return []
        sql = (
            "SELECT * FROM `{table}` "
            "WHERE client_id = @client_id AND session_id IN UNNEST(@session_ids) "
            "ORDER BY timestamp ASC, touchpoint_number ASC"
        )
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ArrayQueryParameter("session_ids", "STRING", list(session_ids)),
        ]
        result = self._run(client_id, sql, params)
        return [row_to_touchpoint(row) for row in result.rows]


class BigQueryEventStore(BigQueryStore):
    """Events and anonymous events; implements halotrack.tracking.store.EventStore."""

    table = "events"
    anon_table = "anon_events"

    def ensure_table(self, client_id: str) -> None:
        with store_errors("provisioning events"):
            self.tenant(client_id).ensure_dataset(
                {self.table: TABLES[self.table], self.anon_table: TABLES[self.anon_table]}
            )

    def insert_event(self, event: TrackedEvent) -> None:
        row = {
            "client_id": event.client_id,
            "session_id": event.session_id,
            "event_name": event.event_name,
            "properties": json.dumps(event.properties),
            "page_url": event.page_url,
            "created_at": _iso(event.created_at),
        }
        self._stream(event.client_id, [row])

    def insert_anonymous_event(self, event: AnonymousEvent) -> None:
        row = {
            "client_id": event.client_id,
            "event_type": event.event_type,
            "utm_source": event.utm_source,
            "utm_medium": event.utm_medium,
            "utm_campaign": event.utm_campaign,
            "utm_term": event.utm_term,
            "utm_content": event.utm_content,
            "referrer_domain": event.referrer_domain,
            "page_path": event.page_path,
            "created_at": _iso(event.created_at),
        }
        with store_errors(f"insert into {self.anon_table}"):
            self.tenant(event.client_id).insert_rows(self.anon_table, [row])

    def list_page_views(self, client_id: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        sql = (
            "SELECT session_id, created_at FROM `{table}` "
            "WHERE client_id = @client_id AND event_name = 'page_view' "
            "AND created_at BETWEEN @start AND @end "
            "ORDER BY created_at"
        )
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("start", "TIMESTAMP", start),
            bigquery.ScalarQueryParameter("end", "TIMESTAMP", end),
        ]
        return self._run(client_id, sql, params).rows


class BigQueryConversionStore(BigQueryStore):
    """Conversions table; implements halotrack.conversions.store.ConversionStore."""

    table = "conversions"

    KEY_FILTER = "client_id = @client_id AND external_id = @external_id AND platform = @platform"

    def upsert(self, conversion: Conversion) -> None:
        row = conversion_to_row(conversion)
        updates = ", ".join(
            f"{name} = {_placeholder(name, bq_type)}"
            for name, bq_type in CONVERSION_COLUMNS.items()
            if name not in CONVERSION_KEEP_ON_UPSERT and name not in ("client_id", "external_id", "platform")
        )
        columns = ", ".join(CONVERSION_COLUMNS)
        values = ", ".join(_placeholder(name, bq_type) for name, bq_type in CONVERSION_COLUMNS.items())

        sql = f"""
        MERGE `{{table}}` AS target
        USING (SELECT @client_id AS client_id, @external_id AS external_id, @platform AS platform) AS source
        ON target.client_id = source.client_id
           AND target.external_id = source.external_id
           AND target.platform = source.platform
        WHEN MATCHED THEN
            UPDATE SET {updates}
        WHEN NOT MATCHED THEN
            INSERT ({columns})
            VALUES ({values})
        """
        params = [_param(name, bq_type, row[name]) for name, bq_type in CONVERSION_COLUMNS.items()]
        self._run(conversion.client_id, sql, params, write=True)

    def mark_forwarded(
        self,
        conversion: Conversion,
        facebook: bool | None = None,
        google: bool | None = None,
    ) -> None:
        sql = f"""
        UPDATE `{{table}}`
        SET sent_to_facebook = COALESCE(@facebook, sent_to_facebook),
            sent_to_google = COALESCE(@google, sent_to_google),
            updated_at = @updated_at
        WHERE {self.KEY_FILTER}
        """
        params = self._key_params(conversion.client_id, conversion.external_id, conversion.platform) + [
            bigquery.ScalarQueryParameter("facebook", "BOOL", facebook),
            bigquery.ScalarQueryParameter("google", "BOOL", google),
            bigquery.ScalarQueryParameter("updated_at", "TIMESTAMP", datetime.now(UTC)),
        ]
        self._run(conversion.client_id, sql, params, write=True)

    def update_status(
        self,
        client_id: str,
        external_id: str,
        platform: str,
        status: LeadStatus,
        deal_value: float | None = None,
    ) -> bool:
        sql = f"""
        UPDATE `{{table}}`
        SET status = @status,
            deal_value = COALESCE(@deal_value, deal_value),
            updated_at = @updated_at
        WHERE {self.KEY_FILTER}
        """
        params = self._key_params(client_id, external_id, platform) + [
            bigquery.ScalarQueryParameter("status", "STRING", LeadStatus(status).value),
            bigquery.ScalarQueryParameter("deal_value", "FLOAT64", deal_value),
            bigquery.ScalarQueryParameter("updated_at", "TIMESTAMP", datetime.now(UTC)),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows > 0

    def list_in_range(
        self,
        client_id: str,
        start: datetime,
        end: datetime,
        conversion_type: ConversionType | None = None,
    ) -> list[Conversion]:
        sql = "SELECT * FROM `{table}` WHERE client_id = @client_id AND created_at BETWEEN @start AND @end"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("start", "TIMESTAMP", start),
            bigquery.ScalarQueryParameter("end", "TIMESTAMP", end),
        ]
        if conversion_type is not None:
            sql += " AND conversion_type = @conversion_type"
            params.append(bigquery.ScalarQueryParameter("conversion_type", "STRING", conversion_type.value))
        sql += " ORDER BY created_at DESC"

        result = self._run(client_id, sql, params)
        return [row_to_conversion(row) for row in result.rows]

    def anonymize_by_email(self, client_id: str, email: str, attribution_data: dict[str, Any]) -> int:
        sql = """
        UPDATE `{table}`
        SET email = NULL,
            phone = NULL,
            name = IF(conversion_type = 'lead', NULL, name),
            company = IF(conversion_type = 'lead', NULL, company),
            message = IF(conversion_type = 'lead', NULL, message),
            attribution_data = PARSE_JSON(@attribution_data),
            updated_at = @updated_at
        WHERE client_id = @client_id AND email = @email
        """
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("email", "STRING", email),
            _param("attribution_data", "JSON", attribution_data),
            bigquery.ScalarQueryParameter("updated_at", "TIMESTAMP", datetime.now(UTC)),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows

    @staticmethod
    def _key_params(client_id: str, external_id: str, platform: str) -> list[bigquery.ScalarQueryParameter]:
        return [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("external_id", "STRING", external_id),
            bigquery.ScalarQueryParameter("platform", "STRING", platform),
        ]


class BigQueryAdSpendStore(BigQueryStore):
    """Ad spend table; implements halotrack.conversions.store.AdSpendStore."""

    table = "ad_spend"

    # A missing campaign matches the empty campaign
    UPSERT_SQL = """
    MERGE `{table}` AS target
    USING (
        SELECT @client_id AS client_id, @date AS date, @source AS source,
               @medium AS medium, @campaign AS campaign
    ) AS incoming
    ON target.client_id = incoming.client_id
       AND target.date = incoming.date
       AND target.source = incoming.source
       AND target.medium = incoming.medium
       AND IFNULL(target.campaign, '') = IFNULL(incoming.campaign, '')
    WHEN MATCHED THEN
        UPDATE SET spend = @spend, currency = @currency, updated_at = @updated_at
    WHEN NOT MATCHED THEN
        INSERT ({columns})
        VALUES ({values})
    """

    def upsert_many(self, entries: list[AdSpend]) -> int:
        sql = self.UPSERT_SQL.replace("{columns}", ", ".join(AD_SPEND_COLUMNS)).replace(
            "{values}", ", ".join(f"@{name}" for name in AD_SPEND_COLUMNS)
        )
        for entry in entries:
            row = ad_spend_to_row(entry)
            params = [_param(name, bq_type, row[name]) for name, bq_type in AD_SPEND_COLUMNS.items()]
            self._run(entry.client_id, sql, params, write=True)
        if entries:
            logger.info(f"Upserted {len(entries)} ad spend entries for client {entries[0].client_id}")
        return len(entries)

    def list_in_range(
        self,
        client_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[AdSpend]:
        sql = "SELECT * FROM `{table}` WHERE client_id = @client_id"
        params = [bigquery.ScalarQueryParameter("client_id", "STRING", client_id)]
        if start is not None:
            sql += " AND date >= @start"
            params.append(bigquery.ScalarQueryParameter("start", "DATE", start))
        if end is not None:
            sql += " AND date <= @end"
            params.append(bigquery.ScalarQueryParameter("end", "DATE", end))
        sql += " ORDER BY date DESC"

        result = self._run(client_id, sql, params)
        return [AdSpend.from_dict(row) for row in result.rows]

    def update(self, client_id: str, spend_id: str, changes: dict[str, Any]) -> bool:
        """Apply a partial update.

        Raises:
            ValueError: For fields that cannot be changed or invalid values.
        """
        columns = spend_changes(changes)
        if not columns:
            return False

        assignments = ", ".join(f"{name} = @v_{name}" for name in columns)
        sql = (
            f"UPDATE `{{table}}` SET {assignments}, updated_at = @updated_at "
            "WHERE client_id = @client_id AND spend_id = @spend_id"
        )
        params = [_param(f"v_{name}", AD_SPEND_COLUMNS[name], value) for name, value in columns.items()]
        params += [
            bigquery.ScalarQueryParameter("updated_at", "TIMESTAMP", datetime.now(UTC)),
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("spend_id", "STRING", str(spend_id)),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows > 0

    def delete(self, client_id: str, spend_id: str) -> bool:
        sql = "DELETE FROM `{table}` WHERE client_id = @client_id AND spend_id = @spend_id"
        params = [
            bigquery.ScalarQueryParameter("client_id", "STRING", client_id),
            bigquery.ScalarQueryParameter("spend_id", "STRING", str(spend_id)),
        ]
        return self._run(client_id, sql, params, write=True).affected_rows > 0


def provision_client(client_id: str, config: BigQueryConfig | None = None, client: bigquery.Client | None = None) -> None:
    """Create a client's dataset and every HaloTrack table in it."""
    tenant = TenantBigQueryClient(client_id, config=config, client=client)
    with store_errors("provisioning"):
        tenant.ensure_dataset(TABLES)
    logger.info(f"Provisioned dataset {tenant.dataset_id}")


# =============================================================================
# Row mapping
# =============================================================================


def session_to_row(session: Session) -> dict[str, Any]:
    row: dict[str, Any] = {
        "session_id": session.session_id,
        "client_id": session.client_id,
        **_touch_to_columns("ft", session.first_touch),
        **_touch_to_columns("lt", session.last_touch),
        **session.click_ids.to_dict(),
        **{name: getattr(session.device, name) for name in DEVICE_FIELDS},
        "email": session.email,
        "phone": session.phone,
        "external_id": session.external_id,
        "consent_status": ConsentStatus(session.consent_status).value,
        "custom_params": session.custom_params,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }
    return row


def row_to_session(row: dict[str, Any]) -> Session:
    return Session(
        client_id=row["client_id"],
        session_id=row["session_id"],
        first_touch=_columns_to_touch("ft", row),
        last_touch=_columns_to_touch("lt", row),
        click_ids=ClickIds(**{name: row.get(name) for name in CLICK_ID_FIELDS}),
        device=DeviceData(**{name: row.get(name) for name in DEVICE_FIELDS}),
        email=row.get("email"),
        phone=row.get("phone"),
        external_id=row.get("external_id"),
        consent_status=ConsentStatus(row.get("consent_status") or "unknown"),
        custom_params=_json_value(row.get("custom_params"), {}),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def session_changes_to_columns(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate SessionStore.update changes into column values."""
    columns: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "last_touch":
            columns.update(_touch_to_columns("lt", value))
        elif key == "click_ids":
            columns.update(value.to_dict())
        elif key == "consent_status":
            columns[key] = ConsentStatus(value).value
        elif key in ("email", "phone", "external_id", "updated_at", "custom_params"):
            columns[key] = value
        else:
            raise ValueError(f"Session field cannot be updated: {key}")
    return columns


def row_to_touchpoint(row: dict[str, Any]) -> Touchpoint:
    return Touchpoint(
        client_id=row["client_id"],
        session_id=row["session_id"],
        touchpoint_number=int(row.get("touchpoint_number") or 0),
        timestamp=row["timestamp"],
        source=row.get("source"),
        medium=row.get("medium"),
        campaign=row.get("campaign"),
        term=row.get("term"),
        content=row.get("content"),
        referrer=row.get("referrer"),
        landing=row.get("landing"),
        click_ids=ClickIds(**{name: row.get(name) for name in CLICK_ID_FIELDS}),
    )


def conversion_to_row(conversion: Conversion) -> dict[str, Any]:
    data = conversion.to_dict()
    data["created_at"] = conversion.created_at
    data["updated_at"] = datetime.now(UTC)
    return {name: data.get(name) for name in CONVERSION_COLUMNS}


def row_to_conversion(row: dict[str, Any]) -> Conversion:
    data = dict(row)
    data["items"] = _json_value(data.get("items"), [])
    data["custom_fields"] = _json_value(data.get("custom_fields"), {})
    data["attribution_data"] = _json_value(data.get("attribution_data"), None)
    data.pop("updated_at", None)
    return Conversion.from_dict(data)


def ad_spend_to_row(entry: AdSpend) -> dict[str, Any]:
    return {
        "spend_id": str(entry.spend_id),
        "client_id": entry.client_id,
        "date": entry.date,
        "source": entry.source,
        "medium": entry.medium,
        "campaign": entry.campaign,
        "spend": entry.spend,
        "currency": entry.currency,
        "created_at": entry.created_at,
        "updated_at": datetime.now(UTC),
    }


def _touch_to_columns(prefix: str, touch: TouchData) -> dict[str, Any]:
    columns = {f"{prefix}_{name}": getattr(touch, name) for name in TOUCH_FIELDS}
    columns[f"{prefix}_timestamp"] = touch.timestamp
    return columns


def _columns_to_touch(prefix: str, row: dict[str, Any]) -> TouchData:
    return TouchData(
        **{name: row.get(f"{prefix}_{name}") for name in TOUCH_FIELDS},
        timestamp=row.get(f"{prefix}_timestamp"),
    )
