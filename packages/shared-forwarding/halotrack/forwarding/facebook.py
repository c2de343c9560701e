"""Meta Conversions API forwarder."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from halotrack.forwarding.base import BaseForwarder
from halotrack.forwarding.config import Destination, FacebookSettings
from halotrack.forwarding.hashing import hash_city, hash_country, hash_email, hash_name, hash_phone
from halotrack.forwarding.registry import get_registry

if TYPE_CHECKING:
    from halotrack.conversions.schema import Conversion
    from halotrack.tracking.schema import Session

logger = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.facebook.com"


class FacebookForwarder(BaseForwarder):
    """Send Purchase and Lead events to the Meta Conversions API.

    User data is SHA-256 hashed (email, phone, country, city, name). The
    conversion's event_id is sent for deduplication against browser pixel
    events.

    Example:
        forwarder = FacebookForwarder(FacebookSettings(pixel_id="123", access_token="EAAB..."))
        result = forwarder.send(conversion, session)
    """

    destination = Destination.FACEBOOK
    settings: FacebookSettings

    def endpoint(self) -> str:
        return f"{GRAPH_API_URL}/{self.settings.api_version}/{self.settings.pixel_id}/events"

    def query_params(self) -> dict[str, str]:
        return {"access_token": self.settings.access_token}

    def is_success(self, response: httpx.Response, body: dict[str, Any]) -> bool:
        # Graph API reports some failures in the body
        return response.is_success and not body.get("error")

    def build_payload(self, conversion: Conversion, session: Session) -> dict[str, Any]:
        is_lead = conversion.conversion_type == "lead"

        user_data: dict[str, Any] = {}
        if email := hash_email(conversion.email):
            user_data["em"] = [email]
        if phone := hash_phone(conversion.phone):
            user_data["ph"] = [phone]
        if is_lead and conversion.name:
            first, _, last = conversion.name.strip().partition(" ")
            if fn := hash_name(first):
                user_data["fn"] = [fn]
            if ln := hash_name(last):
                user_data["ln"] = [ln]
        if session.click_ids.fbc:
            user_data["fbc"] = session.click_ids.fbc
        if session.click_ids.fbp:
            user_data["fbp"] = session.click_ids.fbp
        if session.device.user_agent:
            user_data["client_user_agent"] = session.device.user_agent
        if country := hash_country(session.device.country):
            user_data["country"] = [country]
        if city := hash_city(session.device.city):
            user_data["ct"] = [city]

        if is_lead:
            custom_data: dict[str, Any] = {
                "value": conversion.value,
                "currency": conversion.currency,
                "content_name": conversion.form_type or "contact_form",
                "content_category": "lead_generation",
            }
        else:
            custom_data = {
                "value": conversion.value,
                "currency": conversion.currency,
                "content_ids": [item.id for item in conversion.items],
                "content_type": "product",
                "num_items": len(conversion.items) or 1,
                "contents": [
                    {"id": item.id, "quantity": item.quantity, "item_price": item.price}
                    for item in conversion.items
                ],
            }

        event: dict[str, Any] = {
            "event_name": "Lead" if is_lead else "Purchase",
            "event_time": int(datetime.now(UTC).timestamp()),
            "event_id": conversion.event_id,
            "action_source": "website",
            "user_data": user_data,
            "custom_data": custom_data,
        }
        if source_url := session.last_touch.landing or session.first_touch.landing:
            event["event_source_url"] = source_url

        payload: dict[str, Any] = {"data": [event]}
        if self.settings.test_event_code:
            payload["test_event_code"] = self.settings.test_event_code
        return payload


# Auto-register forwarder
get_registry().register(Destination.FACEBOOK, FacebookForwarder)
