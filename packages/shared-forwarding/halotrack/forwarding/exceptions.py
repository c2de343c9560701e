"""Custom exceptions for ad-platform forwarding."""

from __future__ import annotations


class ForwardingError(Exception):
    """Base exception for forwarding errors."""

    pass


class ForwardingConfigError(ForwardingError):
    """Raised when a destination is missing required credentials."""

    pass
