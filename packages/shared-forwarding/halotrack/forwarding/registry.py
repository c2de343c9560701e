"""Forwarder registry for managing available destinations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from halotrack.forwarding.config import ClientSettings, Destination

if TYPE_CHECKING:
    from halotrack.forwarding.base import BaseForwarder

logger = logging.getLogger(__name__)


class ForwarderRegistry:
    """Registry of available forwarder implementations.

    Singleton pattern for global destination registration.

    Example:
        registry = ForwarderRegistry()
        registry.register(Destination.FACEBOOK, FacebookForwarder)

        for forwarder in registry.create_configured(client_settings):
            forwarder.send(conversion, session)
    """

    _instance: ForwarderRegistry | None = None
    _forwarders: dict[Destination, type[BaseForwarder]]

    def __new__(cls) -> ForwarderRegistry:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._forwarders = {}
        return cls._instance

    def register(
        self,
        destination: Destination,
        forwarder_class: type[BaseForwarder],
    ) -> None:
        """Register a forwarder implementation."""
        self._forwarders[destination] = forwarder_class
        logger.debug(f"Registered forwarder: {destination.value}")

    def unregister(self, destination: Destination) -> None:
        if destination in self._forwarders:
            del self._forwarders[destination]

    def get(self, destination: Destination) -> type[BaseForwarder] | None:
        return self._forwarders.get(destination)

    def create(
        self,
        destination: Destination,
        settings: ClientSettings,
        client: httpx.Client | None = None,
    ) -> BaseForwarder:
        """Create a forwarder for a client's destination.

        Raises:
            ValueError: If the destination is not registered.
            ForwardingConfigError: If the client has no credentials for it.
        """
        forwarder_class = self.get(destination)
        if forwarder_class is None:
            raise ValueError(f"No forwarder registered for destination: {destination.value}")
        return forwarder_class(settings.destination_settings(destination), client=client)

    def create_configured(
        self,
        settings: ClientSettings,
        client: httpx.Client | None = None,
    ) -> list[BaseForwarder]:
        """Forwarders for every registered destination the client has credentials for."""
        return [
            self.create(destination, settings, client=client)
            for destination in self._forwarders
            if settings.destination_settings(destination) is not None
        ]

    def list_available(self) -> list[Destination]:
        return list(self._forwarders.keys())

    def is_registered(self, destination: Destination) -> bool:
        return destination in self._forwarders


# Global registry instance
_registry = ForwarderRegistry()


def get_registry() -> ForwarderRegistry:
    """Get the global forwarder registry."""
    return _registry
