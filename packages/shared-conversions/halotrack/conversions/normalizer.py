"""
Conversion normalizers - transform platform payloads into the unified Conversion schema.

Each normalizer handles one source:
- WooCommerceNormalizer: WooCommerce order webhooks
- ShopifyNormalizer: Shopify order webhooks
- CustomOrderNormalizer: generic order payloads (fallback)
- FormLeadNormalizer: website form leads

New platforms are supported by adding a normalizer, not by branching inside
the ingestion pipeline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, ClassVar

import pandas as pd

from halotrack.conversions.exceptions import NormalizationError
from halotrack.conversions.schema import (
    Conversion,
    ConversionType,
    OrderItem,
    to_float,
    to_int,
)
from halotrack.tracking.identity import normalize_customer_id, normalize_email, normalize_phone
from halotrack.tracking.schema import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "CZK"


class ConversionNormalizer(ABC):
    """Base class for conversion normalizers."""

    platform: ClassVar[str]
    conversion_type: ClassVar[ConversionType] = ConversionType.PURCHASE

    def __init__(self, client_id: str, default_currency: str = DEFAULT_CURRENCY):
        """
        Initialize normalizer.

        Args:
            client_id: HaloTrack client (tenant) identifier
            default_currency: Currency used when the payload has none
        """
        self.client_id = client_id
        self.default_currency = default_currency

    @classmethod
    def detect(cls, payload: dict[str, Any]) -> bool:
        """Return True if the payload looks like this normalizer's format."""
        return False

    @abstractmethod
    def normalize(self, payload: dict[str, Any]) -> Conversion:
        """
        Normalize one source payload to a Conversion.

        Args:
            payload: Decoded webhook or form body

        Returns:
            Normalized Conversion (unattributed)

        Raises:
            NormalizationError: If the payload has no usable identifier
        """
        pass

    def normalize_batch(
        self,
        data: pd.DataFrame | list[dict[str, Any]],
    ) -> list[Conversion]:
        """Normalize many payloads, e.g. a historical export."""
        return [self.normalize(record) for record in self._to_records(data)]

    def _to_records(
        self,
        data: pd.DataFrame | list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Convert input to a list of payload dicts, dropping missing cells."""
        if isinstance(data, pd.DataFrame):
            return [
                {k: v for k, v in row.items() if not (pd.api.types.is_scalar(v) and pd.isna(v))}
                for row in data.to_dict(orient="records")
            ]
        return list(data)

    def _currency(self, payload: dict[str, Any]) -> str:
        return payload.get("currency") or self.default_currency

    def _created_at(self, payload: dict[str, Any], *keys: str) -> datetime:
        """First parseable timestamp among keys, else now."""
        for key in keys:
            value = payload.get(key)
            if not value:
                continue
            try:
                return parse_timestamp(value)
            except ValueError:
                logger.warning(f"Ignoring unparseable {key} on {self.platform} payload: {value!r}")
        return datetime.now(UTC)

    @staticmethod
    def _external_id(*candidates: Any) -> str:
        for candidate in candidates:
            if candidate is not None and candidate != "":
                return str(candidate)
        raise NormalizationError("Payload has no order or lead identifier")

    @staticmethod
    def _items(line_items: list[dict[str, Any]] | None, name_key: str = "name") -> list[OrderItem]:
        return [
            OrderItem(
                id=str(item.get("product_id", item.get("id", ""))),
                name=item.get(name_key),
                price=to_float(item.get("price")),
                quantity=to_int(item.get("quantity"), default=1),
            )
            for item in line_items or []
        ]


class WooCommerceNormalizer(ConversionNormalizer):
    """
    Normalize WooCommerce order webhooks.

    The tracking session id is read from the `_halo_session` order meta entry,
    or a top-level `halo_session_id` field.

    Example:
        normalizer = WooCommerceNormalizer(client_id="acme")
        conversion = normalizer.normalize(webhook_body)
    """

    platform = "woocommerce"

    @classmethod
    def detect(cls, payload: dict[str, Any]) -> bool:
        # Shopify orders carry line_items too
        if ShopifyNormalizer.detect(payload) and not payload.get("billing"):
            return False
        return bool(payload.get("billing") or payload.get("line_items"))

    def normalize(self, payload: dict[str, Any]) -> Conversion:
        billing = payload.get("billing") or {}
        session_id = next(
            (m.get("value") for m in payload.get("meta_data") or [] if m.get("key") == "_halo_session"),
            None,
        )

        return Conversion(
            client_id=self.client_id,
            external_id=self._external_id(payload.get("id"), payload.get("order_id")),
            platform=self.platform,
            conversion_type=ConversionType.PURCHASE,
            value=to_float(payload.get("total")),
            subtotal=to_float(payload.get("subtotal")),
            tax=to_float(payload.get("total_tax")),
            shipping=to_float(payload.get("shipping_total")),
            currency=self._currency(payload),
            email=normalize_email(billing.get("email")),
            phone=normalize_phone(billing.get("phone")),
            customer_id=normalize_customer_id(payload.get("customer_id") or None),
            session_id=session_id or payload.get("halo_session_id") or None,
            items=self._items(payload.get("line_items")),
            created_at=self._created_at(payload, "date_created_gmt", "date_created"),
        )


class ShopifyNormalizer(ConversionNormalizer):
    """
    Normalize Shopify order webhooks.

    The tracking session id is read from the `halo_session_id` (or
    `_halo_session`) cart note attribute.
    """

    platform = "shopify"

    @classmethod
    def detect(cls, payload: dict[str, Any]) -> bool:
        return bool(payload.get("checkout_token") or payload.get("order_number"))

    def normalize(self, payload: dict[str, Any]) -> Conversion:
        customer = payload.get("customer") or {}
        session_id = next(
            (
                a.get("value")
                for a in payload.get("note_attributes") or []
                if a.get("name") in ("halo_session_id", "_halo_session")
            ),
            None,
        )
        shipping = ((payload.get("total_shipping_price_set") or {}).get("shop_money") or {}).get("amount")

        return Conversion(
            client_id=self.client_id,
            external_id=self._external_id(payload.get("id"), payload.get("order_number")),
            platform=self.platform,
            conversion_type=ConversionType.PURCHASE,
            value=to_float(payload.get("total_price")),
            subtotal=to_float(payload.get("subtotal_price")),
            tax=to_float(payload.get("total_tax")),
            shipping=to_float(shipping),
            currency=self._currency(payload),
            email=normalize_email(payload.get("email")) or normalize_email(customer.get("email")),
            phone=normalize_phone(payload.get("phone") or customer.get("phone")),
            customer_id=normalize_customer_id(customer.get("id")),
            session_id=session_id or None,
            items=self._items(payload.get("line_items"), name_key="title"),
            created_at=self._created_at(payload, "created_at"),
        )


class CustomOrderNormalizer(ConversionNormalizer):
    """
    Normalize generic order payloads.

    Accepts the canonical field names plus common aliases:
    - order_id / id
    - total / total_amount
    - email / customer_email, phone / customer_phone
    - session_id / halo_session_id
    """

    platform = "custom"

    @classmethod
    def detect(cls, payload: dict[str, Any]) -> bool:
        return True

    def normalize(self, payload: dict[str, Any]) -> Conversion:
        items = [
            item if isinstance(item, OrderItem) else OrderItem.from_dict(item)
            for item in payload.get("items") or []
        ]
        return Conversion(
            client_id=self.client_id,
            external_id=self._external_id(payload.get("order_id"), payload.get("id")),
            platform=payload.get("platform") or self.platform,
            conversion_type=ConversionType.PURCHASE,
            value=to_float(payload.get("total") or payload.get("total_amount")),
            subtotal=to_float(payload.get("subtotal")),
            tax=to_float(payload.get("tax")),
            shipping=to_float(payload.get("shipping")),
            currency=self._currency(payload),
            email=normalize_email(payload.get("email")) or normalize_email(payload.get("customer_email")),
            phone=normalize_phone(payload.get("phone") or payload.get("customer_phone")),
            customer_id=normalize_customer_id(payload.get("customer_id")),
            session_id=payload.get("session_id") or payload.get("halo_session_id") or None,
            items=items,
            custom_fields=payload.get("custom_fields") or {},
            created_at=self._created_at(payload, "created_at"),
        )


class FormLeadNormalizer(ConversionNormalizer):
    """
    Normalize website form leads.

    Leads without an identifier get a generated `lead_<epoch ms>` id. The
    `platform` of a lead is its source (default "form").
    """

    platform = "form"
    conversion_type = ConversionType.LEAD

    def normalize(self, payload: dict[str, Any]) -> Conversion:
        now = datetime.now(UTC)
        external_id = payload.get("lead_id") or payload.get("id") or f"lead_{int(now.timestamp() * 1000)}"
        name = payload.get("name") or " ".join(
            part for part in (payload.get("first_name"), payload.get("last_name")) if part
        )

        return Conversion(
            client_id=self.client_id,
            external_id=str(external_id),
            platform=payload.get("source") or self.platform,
            conversion_type=ConversionType.LEAD,
            value=to_float(payload.get("value") or payload.get("lead_value")),
            currency=self._currency(payload),
            email=normalize_email(payload.get("email")),
            phone=normalize_phone(payload.get("phone")),
            customer_id=normalize_customer_id(payload.get("customer_id")),
            session_id=payload.get("session_id") or payload.get("halo_session_id") or None,
            name=name or None,
            company=payload.get("company") or None,
            form_type=payload.get("form_type") or "contact",
            message=payload.get("message") or payload.get("comments") or None,
            consent_given=bool(payload.get("consent_given") or payload.get("gdpr_consent")),
            ip_address=payload.get("ip_address") or None,
            custom_fields=payload.get("custom_fields") or {},
            created_at=self._created_at(payload, "created_at"),
        )


# Order of detection matters: the custom normalizer accepts anything
ORDER_NORMALIZERS: tuple[type[ConversionNormalizer], ...] = (
    WooCommerceNormalizer,
    ShopifyNormalizer,
    CustomOrderNormalizer,
)


def detect_order_normalizer(
    payload: dict[str, Any],
    client_id: str,
    default_currency: str = DEFAULT_CURRENCY,
) -> ConversionNormalizer:
    """
    Pick the order normalizer matching a webhook payload.

    Example:
        normalizer = detect_order_normalizer(body, client_id="acme")
        conversion = normalizer.normalize(body)
    """
    for normalizer_class in ORDER_NORMALIZERS:
        if normalizer_class.detect(payload):
            logger.debug(f"Detected {normalizer_class.platform} order payload")
            return normalizer_class(client_id, default_currency=default_currency)
    return CustomOrderNormalizer(client_id, default_currency=default_currency)
