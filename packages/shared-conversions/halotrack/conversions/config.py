"""Attribution settings shared by ingestion and reporting."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator

from halotrack.conversions.attribution import DEFAULT_HALF_LIFE_DAYS
from halotrack.conversions.normalizer import DEFAULT_CURRENCY
from halotrack.conversions.schema import AttributionModel


class AttributionConfig(BaseModel):
    """Configuration for attribution and reporting."""

    default_model: AttributionModel = AttributionModel.LAST_TOUCH
    half_life_days: float = Field(default=DEFAULT_HALF_LIFE_DAYS, gt=0)
    default_currency: str = DEFAULT_CURRENCY
    site_host: str | None = None  # Own host, ignored as a referrer
    visit_gap_minutes: int = Field(default=30, gt=0)

    @field_validator("default_model", mode="before")
    @classmethod
    def _parse_model(cls, value: object) -> AttributionModel:
        return AttributionModel.parse(value)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls) -> AttributionConfig:
        """Load configuration from environment variables."""
        return cls(
            default_model=os.getenv("HALOTRACK_DEFAULT_MODEL") or AttributionModel.LAST_TOUCH,
            half_life_days=float(os.getenv("HALOTRACK_HALF_LIFE_DAYS", DEFAULT_HALF_LIFE_DAYS)),
            default_currency=os.getenv("HALOTRACK_DEFAULT_CURRENCY", DEFAULT_CURRENCY),
            site_host=os.getenv("HALOTRACK_SITE_HOST") or None,
            visit_gap_minutes=int(os.getenv("HALOTRACK_VISIT_GAP_MINUTES", "30")),
        )
