"""
Unified conversion schema - platform-agnostic lead and order records.

Conversions arrive from many sources (WooCommerce and Shopify order webhooks,
custom order payloads, website lead forms). Each is normalized into one
canonical `Conversion` so that identity resolution, attribution and reporting
never need to know which platform produced it.

The attribution results (`match_type`, `attribution_data`, `days_to_convert`)
are written once when the conversion is ingested. `attribution_data` is a
snapshot of the matched session at that moment and is not updated if the
session changes later.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from halotrack.tracking.schema import parse_timestamp


class ConversionType(str, Enum):
    """Type of conversion event."""

    LEAD = "lead"  # Form submission
    PURCHASE = "purchase"  # Order


class MatchType(str, Enum):
    """Which identity signal resolved a conversion to a session."""

    SESSION = "session"
    EMAIL = "email"
    PHONE = "phone"
    CUSTOMER_ID = "customer_id"
    NONE = "none"


class LeadStatus(str, Enum):
    """Sales pipeline status of a conversion."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    WON = "won"
    LOST = "lost"


class AttributionModel(str, Enum):
    """Credit allocation model, selected per report."""

    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"  # Default
    LINEAR = "linear"  # Equal credit to all touchpoints
    POSITION_BASED = "position_based"  # 40% first, 40% last, 20% middle
    U_SHAPED = "u_shaped"  # Alias of position_based
    TIME_DECAY = "time_decay"  # Half-life decay towards the conversion

    @classmethod
    def parse(cls, value: str | AttributionModel | None) -> AttributionModel:
        """Parse a model name, defaulting to last touch.

        Raises:
            ValueError: If the name is not a known model.
        """
        if value is None or value == "":
            return cls.LAST_TOUCH
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown attribution model: {value!r}. Valid models are: {valid}") from e


@dataclass
class OrderItem:
    """A purchased line item."""

    id: str
    name: str | None = None
    price: float = 0.0
    quantity: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrderItem:
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name"),
            price=to_float(data.get("price")),
            quantity=to_int(data.get("quantity"), default=1),
        )


@dataclass
class Conversion:
    """
    Canonical conversion record (lead or order).

    Upserted by (client_id, external_id, platform), so replaying a webhook
    updates the existing record instead of creating a duplicate.

    Example:
        conversion = Conversion(
            client_id="acme",
            external_id="1042",
            platform="shopify",
            conversion_type=ConversionType.PURCHASE,
            value=1250.0,
            currency="CZK",
            email="jane@example.com",
            session_id="5f0c...",
        )
    """

    client_id: str
    external_id: str
    platform: str = "custom"  # Source platform for orders, lead source for leads
    conversion_type: ConversionType = ConversionType.PURCHASE
    conversion_id: UUID = field(default_factory=uuid4)

    # Money
    value: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    shipping: float = 0.0
    currency: str = "CZK"

    # Contact identifiers
    email: str | None = None
    phone: str | None = None
    customer_id: str | None = None
    session_id: str | None = None

    # Lead details
    name: str | None = None
    company: str | None = None
    form_type: str | None = None
    message: str | None = None
    consent_given: bool = False
    ip_address: str | None = None

    items: list[OrderItem] = field(default_factory=list)
    custom_fields: dict[str, Any] = field(default_factory=dict)

    # Pipeline
    status: LeadStatus | None = None
    deal_value: float | None = None

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Attribution (populated at ingestion)
    match_type: MatchType = MatchType.NONE
    attribution_data: dict[str, Any] = field(default_factory=lambda: {"match_type": MatchType.NONE.value})
    days_to_convert: int | None = None

    # Forwarding
    event_id: str | None = None
    sent_to_facebook: bool = False
    sent_to_google: bool = False

    def __post_init__(self) -> None:
        self.created_at = parse_timestamp(self.created_at) or datetime.now(UTC)
        if self.status is None:
            self.status = LeadStatus.WON if self.conversion_type == ConversionType.PURCHASE else LeadStatus.NEW

    @property
    def is_won(self) -> bool:
        return self.status == LeadStatus.WON

    @property
    def effective_deal_value(self) -> float:
        """Deal value used for pipeline weighting; orders fall back to their total."""
        if self.deal_value is not None:
            return self.deal_value
        if self.conversion_type == ConversionType.PURCHASE:
            return self.value
        return 0.0

    @property
    def attributed(self) -> bool:
        return self.match_type != MatchType.NONE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and tool responses."""
        return {
            "conversion_id": str(self.conversion_id),
            "client_id": self.client_id,
            "external_id": self.external_id,
            "platform": self.platform,
            "conversion_type": self.conversion_type.value,
            "value": self.value,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "currency": self.currency,
            "email": self.email,
            "phone": self.phone,
            "customer_id": self.customer_id,
            "session_id": self.session_id,
            "name": self.name,
            "company": self.company,
            "form_type": self.form_type,
            "message": self.message,
            "consent_given": self.consent_given,
            "ip_address": self.ip_address,
            "items": [item.to_dict() for item in self.items],
            "custom_fields": self.custom_fields,
            "status": self.status.value if self.status else None,
            "deal_value": self.deal_value,
            "created_at": self.created_at.isoformat(),
            "match_type": self.match_type.value,
            "attribution_data": self.attribution_data,
            "days_to_convert": self.days_to_convert,
            "event_id": self.event_id,
            "sent_to_facebook": self.sent_to_facebook,
            "sent_to_google": self.sent_to_google,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversion:
        """Create Conversion from dictionary.

        Raises:
            ValueError: If client_id or external_id is missing, or if the
                timestamp cannot be parsed.
        """
        for required in ("client_id", "external_id"):
            if not data.get(required):
                raise ValueError(f"Missing required field: {required}")

        deal_value = data.get("deal_value")
        return cls(
            client_id=data["client_id"],
            external_id=str(data["external_id"]),
            platform=data.get("platform") or "custom",
            conversion_type=ConversionType(data.get("conversion_type") or "purchase"),
            conversion_id=UUID(str(data["conversion_id"])) if data.get("conversion_id") else uuid4(),
            value=to_float(data.get("value")),
            subtotal=to_float(data.get("subtotal")),
            tax=to_float(data.get("tax")),
            shipping=to_float(data.get("shipping")),
            currency=data.get("currency") or "CZK",
            email=data.get("email"),
            phone=data.get("phone"),
            customer_id=data.get("customer_id"),
            session_id=data.get("session_id"),
            name=data.get("name"),
            company=data.get("company"),
            form_type=data.get("form_type"),
            message=data.get("message"),
            consent_given=bool(data.get("consent_given")),
            ip_address=data.get("ip_address"),
            items=[OrderItem.from_dict(item) for item in data.get("items") or []],
            custom_fields=data.get("custom_fields") or {},
            status=LeadStatus(data["status"]) if data.get("status") else None,
            deal_value=to_float(deal_value) if deal_value is not None else None,
            created_at=parse_timestamp(data.get("created_at")) or datetime.now(UTC),
            match_type=MatchType(data.get("match_type") or "none"),
            attribution_data=data.get("attribution_data") or {"match_type": MatchType.NONE.value},
            days_to_convert=data.get("days_to_convert"),
            event_id=data.get("event_id"),
            sent_to_facebook=bool(data.get("sent_to_facebook")),
            sent_to_google=bool(data.get("sent_to_google")),
        )


def to_float(value: Any) -> float:
    """Parse a money amount permissively. Missing or malformed values are 0."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any, default: int = 0) -> int:
    """Parse a count permissively ("2", "2.0", 2.0). Missing, malformed or zero values give the default."""
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return number or default
