"""Per-client forwarding settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Destination(str, Enum):
    """Supported forwarding destinations."""

    FACEBOOK = "facebook"  # Meta Conversions API
    GOOGLE = "google"  # GA4 Measurement Protocol


@dataclass
class FacebookSettings:
    """Meta pixel credentials (repr=False keeps the token out of logs)."""

    pixel_id: str
    access_token: str = field(repr=False)
    test_event_code: str | None = None
    api_version: str = "v18.0"


@dataclass
class GoogleSettings:
    """GA4 Measurement Protocol credentials."""

    measurement_id: str
    api_secret: str = field(repr=False)


@dataclass
class ClientSettings:
    """
    Settings for one client (tenant), passed explicitly into ingestion.

    Example:
        settings = ClientSettings.from_dict({
            "currency": "CZK",
            "facebook": {"pixel_id": "123", "access_token": "EAAB..."},
            "google": {"measurement_id": "G-XXXX", "api_secret": "s3cr3t"},
        })
    """

    currency: str = "CZK"
    timezone: str = "Europe/Prague"
    facebook: FacebookSettings | None = None
    google: GoogleSettings | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ClientSettings:
        """Build settings from the stored JSON shape.

        Destinations with incomplete credentials are left unconfigured.
        """
        data = data or {}
        fb = data.get("facebook") or {}
        google = data.get("google") or {}

        return cls(
            currency=data.get("currency") or "CZK",
            timezone=data.get("timezone") or "Europe/Prague",
            facebook=FacebookSettings(
                pixel_id=str(fb["pixel_id"]),
                access_token=fb["access_token"],
                test_event_code=fb.get("test_event_code") or None,
            )
            if fb.get("pixel_id") and fb.get("access_token")
            else None,
            google=GoogleSettings(
                measurement_id=google["measurement_id"],
                api_secret=google["api_secret"],
            )
            if google.get("measurement_id") and google.get("api_secret")
            else None,
        )

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        """Serialize; secrets are masked unless include_secrets is set."""
        result: dict[str, Any] = {"currency": self.currency, "timezone": self.timezone}
        if self.facebook:
            result["facebook"] = {
                "pixel_id": self.facebook.pixel_id,
                "access_token": self.facebook.access_token if include_secrets else "***",
                "test_event_code": self.facebook.test_event_code,
            }
        if self.google:
            result["google"] = {
                "measurement_id": self.google.measurement_id,
                "api_secret": self.google.api_secret if include_secrets else "***",
            }
        return result

    def destination_settings(self, destination: Destination) -> FacebookSettings | GoogleSettings | None:
        if destination == Destination.FACEBOOK:
            return self.facebook
        return self.google
