"""Custom exceptions for conversion ingestion and attribution."""

from __future__ import annotations


class ConversionError(Exception):
    """Base exception for conversion errors."""

    pass


class NormalizationError(ConversionError):
    """Raised when a platform payload cannot be mapped to a Conversion."""

    pass


class StoreError(ConversionError):
    """Raised when a storage read or write fails."""

    pass
