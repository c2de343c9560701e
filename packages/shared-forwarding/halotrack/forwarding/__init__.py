"""HaloTrack Forwarding - server-side conversion forwarding to ad platforms.

Destinations:
- Meta Conversions API (Purchase, Lead)
- GA4 Measurement Protocol (purchase, generate_lead)

Importing this package registers both forwarders.

Example:
    from halotrack.forwarding import ClientSettings, get_registry

    settings = ClientSettings.from_dict(client.settings)
    for forwarder in get_registry().create_configured(settings):
        with forwarder:
            result = forwarder.send(conversion, session)
"""

from halotrack.forwarding.base import BaseForwarder, ForwardingResult
from halotrack.forwarding.config import (
    ClientSettings,
    Destination,
    FacebookSettings,
    GoogleSettings,
)
from halotrack.forwarding.exceptions import ForwardingConfigError, ForwardingError
from halotrack.forwarding.facebook import FacebookForwarder
from halotrack.forwarding.google import GoogleForwarder
from halotrack.forwarding.registry import ForwarderRegistry, get_registry

__all__ = [
    # Base
    "BaseForwarder",
    "ForwardingResult",
    # Config
    "ClientSettings",
    "Destination",
    "FacebookSettings",
    "GoogleSettings",
    # Exceptions
    "ForwardingError",
    "ForwardingConfigError",
    # Destinations
    "FacebookForwarder",
    "GoogleForwarder",
    # Registry
    "ForwarderRegistry",
    "get_registry",
]
