"""Base forwarder abstract class."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from halotrack.forwarding.config import Destination
from halotrack.forwarding.exceptions import ForwardingConfigError

if TYPE_CHECKING:
    from halotrack.conversions.schema import Conversion
    from halotrack.tracking.schema import Session

logger = logging.getLogger(__name__)

API_TIMEOUT = httpx.Timeout(30.0, connect=10.0)  # 30s read, 10s connect


@dataclass
class ForwardingResult:
    """Outcome of forwarding one conversion to one destination."""

    destination: Destination
    success: bool
    status_code: int | None = None
    response: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class BaseForwarder(ABC):
    """Abstract base class for ad-platform forwarders.

    Subclasses must implement:
    - build_payload(): The destination's request body for a conversion
    - endpoint(): The URL to POST to
    - query_params(): Query string parameters (credentials)

    Subclasses must set the class attribute:
    - destination: The Destination enum value for this forwarder

    `send()` never raises. Transport errors, non-2xx responses and error
    bodies all come back as `ForwardingResult(success=False)`, so one failing
    destination never affects another or the stored conversion.

    Can be used as a context manager:
        with FacebookForwarder(settings.facebook) as forwarder:
            result = forwarder.send(conversion, session)
    """

    destination: Destination

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Validate that subclasses define destination."""
        super().__init_subclass__(**kwargs)
        # Skip validation for abstract subclasses
        if ABC in cls.__bases__:
            return
        if not hasattr(cls, "destination") or cls.destination is None:
            raise TypeError(f"{cls.__name__} must define a 'destination' class attribute")

    def __init__(self, settings: Any, client: httpx.Client | None = None):
        """Initialize forwarder.

        Args:
            settings: Destination credentials.
            client: Optional shared HTTP client. A private one is created
                lazily (and closed by close()) when omitted.

        Raises:
            ForwardingConfigError: If settings are missing.
        """
        if settings is None:
            raise ForwardingConfigError(f"{self.destination.value} forwarding is not configured")
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> BaseForwarder:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=API_TIMEOUT)
        return self._client

    @abstractmethod
    def build_payload(self, conversion: Conversion, session: Session) -> dict[str, Any]:
        """Build the destination request body."""
        pass  # pragma: no cover

    @abstractmethod
    def endpoint(self) -> str:
        pass  # pragma: no cover

    @abstractmethod
    def query_params(self) -> dict[str, str]:
        pass  # pragma: no cover

    def is_success(self, response: httpx.Response, body: dict[str, Any]) -> bool:
        """Whether a response counts as accepted."""
        return response.is_success

    def send(self, conversion: Conversion, session: Session) -> ForwardingResult:
        """Forward a conversion.

        Args:
            conversion: Stored conversion (with its event_id).
            session: The session the conversion was attributed to.

        Returns:
            ForwardingResult; never raises for transport or API errors.
        """
        try:
            payload = self.build_payload(conversion, session)
            response = self.client.post(self.endpoint(), params=self.query_params(), json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                f"{self.destination.value} forwarding failed for conversion "
                f"{conversion.external_id}: {type(e).__name__}"
            )
            return ForwardingResult(destination=self.destination, success=False, error=str(e))

        body = self._json(response)
        success = self.is_success(response, body)
        if success:
            logger.info(f"Forwarded conversion {conversion.external_id} to {self.destination.value}")
        else:
            logger.warning(
                f"{self.destination.value} rejected conversion {conversion.external_id}: "
                f"HTTP {response.status_code}"
            )

        return ForwardingResult(
            destination=self.destination,
            success=success,
            status_code=response.status_code,
            response=body,
            error=None if success else f"HTTP {response.status_code}",
        )

    def close(self) -> None:
        """Close the HTTP client if this forwarder created it."""
        if not self._owns_client:
            return
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:  # pragma: no cover
                logger.warning(f"Error closing {self.destination.value} HTTP client: {e}")
        self._client = None

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}
