"""GA4 Measurement Protocol forwarder."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from halotrack.forwarding.base import BaseForwarder
from halotrack.forwarding.config import Destination, GoogleSettings
from halotrack.forwarding.hashing import hash_email, hash_phone
from halotrack.forwarding.registry import get_registry

if TYPE_CHECKING:
    from halotrack.conversions.schema import Conversion
    from halotrack.tracking.schema import Session

MEASUREMENT_PROTOCOL_URL = "https://www.google-analytics.com/mp/collect"


class GoogleForwarder(BaseForwarder):
    """Send purchase and generate_lead events to GA4.

    The session id is used as the GA client id. The Measurement Protocol
    answers 2xx for anything it can parse, so success only means "accepted".
    """

    destination = Destination.GOOGLE
    settings: GoogleSettings

    def endpoint(self) -> str:
        return MEASUREMENT_PROTOCOL_URL

    def query_params(self) -> dict[str, str]:
        return {
            "measurement_id": self.settings.measurement_id,
            "api_secret": self.settings.api_secret,
        }

    def build_payload(self, conversion: Conversion, session: Session) -> dict[str, Any]:
        if conversion.conversion_type == "lead":
            event = {
                "name": "generate_lead",
                "params": {
                    "value": conversion.value,
                    "currency": conversion.currency,
                    "form_type": conversion.form_type or "contact",
                },
            }
        else:
            event = {
                "name": "purchase",
                "params": {
                    "transaction_id": conversion.external_id,
                    "value": conversion.value,
                    "currency": conversion.currency,
                    "items": [
                        {
                            "item_id": item.id,
                            "item_name": item.name,
                            "price": item.price,
                            "quantity": item.quantity,
                        }
                        for item in conversion.items
                    ],
                },
            }

        user_data = {}
        if email := hash_email(conversion.email):
            user_data["sha256_email_address"] = email
        if phone := hash_phone(conversion.phone):
            user_data["sha256_phone_number"] = phone

        payload: dict[str, Any] = {"client_id": session.session_id, "events": [event]}
        if user_data:
            payload["user_data"] = user_data
        return payload


# Auto-register forwarder
get_registry().register(Destination.GOOGLE, GoogleForwarder)
