"""
Attribution - distribute conversion credit across marketing channels.

Supports multiple attribution models:
- Last-touch (default): Credit to the stored last touch
- First-touch: Credit to the stored first touch
- Linear: Equal credit to all touchpoints
- Time-decay: More credit to recent touchpoints (7-day half-life by default)
- Position-based / U-shaped: 40% first, 40% last, 20% middle

Credit is keyed by channel, "source / medium", and the credits of one
conversion always sum to 1.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from halotrack.conversions.schema import AttributionModel, Conversion
from halotrack.tracking.schema import Touchpoint

DIRECT_SOURCE = "Direct"
NO_MEDIUM = "(none)"
DIRECT_CHANNEL = f"{DIRECT_SOURCE} / {NO_MEDIUM}"

DEFAULT_HALF_LIFE_DAYS = 7.0

FIRST_TOUCH_WEIGHT = 0.4
LAST_TOUCH_WEIGHT = 0.4
MIDDLE_WEIGHT = 0.2

MULTI_TOUCH_MODELS = frozenset(
    {
        AttributionModel.LINEAR,
        AttributionModel.POSITION_BASED,
        AttributionModel.U_SHAPED,
        AttributionModel.TIME_DECAY,
    }
)


def channel_key(source: str | None, medium: str | None) -> str:
    """Build a "source / medium" key, substituting Direct / (none) for blanks."""
    return f"{source or DIRECT_SOURCE} / {medium or NO_MEDIUM}"


def is_marketing_touch(touchpoint: Touchpoint) -> bool:
    """A touch counts for multi-touch credit when it has a real source and medium."""
    source = (touchpoint.source or "").strip()
    medium = (touchpoint.medium or "").strip()
    if not source or source.lower() == "direct":
        return False
    return bool(medium) and medium != NO_MEDIUM


def stored_channel(conversion: Conversion, model: AttributionModel) -> str:
    """
    Channel from the conversion's stored attribution snapshot.

    First-touch reads the stored first touch; every other model reads the
    stored last touch. Without a snapshot the conversion's own source
    (its platform) is used, and without that, Direct / (none).
    """
    key = "first_touch" if model == AttributionModel.FIRST_TOUCH else "last_touch"
    touch = (conversion.attribution_data or {}).get(key)
    if touch:
        return channel_key(touch.get("source"), touch.get("medium"))
    if conversion.platform:
        return channel_key(conversion.platform, None)
    return DIRECT_CHANNEL


def allocate_credit(
    conversion: Conversion,
    touchpoints: Iterable[Touchpoint],
    model: AttributionModel | str = AttributionModel.LAST_TOUCH,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
) -> dict[str, float]:
    """
    Allocate one conversion's credit across channels.

    Args:
        conversion: The conversion being credited
        touchpoints: Journaled touchpoints of the conversion's session
        model: Attribution model
        half_life_days: Half-life used by the time-decay model

    Returns:
        Mapping of "source / medium" to credit; values sum to 1

    Example:
        >>> credit = allocate_credit(conversion, journey, AttributionModel.LINEAR)
        >>> credit
        {'google / cpc': 0.5, 'facebook / cpc': 0.5}
    """
    model = AttributionModel.parse(model)
    # Touches journaled after the conversion did not lead to it
    touches = sorted(
        (tp for tp in touchpoints if is_marketing_touch(tp) and tp.timestamp <= conversion.created_at),
        key=lambda tp: tp.timestamp,
    )

    if not touches or model not in MULTI_TOUCH_MODELS:
        return {stored_channel(conversion, model): 1.0}

    if model == AttributionModel.LINEAR:
        weights = _linear_weights(len(touches))
    elif model == AttributionModel.TIME_DECAY:
        weights = _time_decay_weights(touches, conversion.created_at, half_life_days)
    else:
        weights = _position_based_weights(len(touches))

    credit: dict[str, float] = {}
    for touch, weight in zip(touches, weights, strict=True):
        key = channel_key(touch.source, touch.medium)
        credit[key] = credit.get(key, 0.0) + weight
    return credit


def _linear_weights(total: int) -> list[float]:
    return [1.0 / total] * total


def _position_based_weights(total: int) -> list[float]:
    """
    40% to first, 40% to last, 20% distributed to middle.
    """
    if total == 1:
        return [1.0]
    if total == 2:
        return [0.5, 0.5]
    middle = MIDDLE_WEIGHT / (total - 2)
    return [FIRST_TOUCH_WEIGHT] + [middle] * (total - 2) + [LAST_TOUCH_WEIGHT]


def _time_decay_weights(
    touches: list[Touchpoint],
    conversion_time: datetime,
    half_life_days: float,
) -> list[float]:
    """
    More credit to recent touchpoints.

    weight = 2 ** (-days_before_conversion / half_life_days), renormalized to
    sum to 1.
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")

    raw = []
    for touch in touches:
        days_before = max((conversion_time - touch.timestamp).total_seconds() / 86400, 0.0)
        raw.append(math.pow(2.0, -days_before / half_life_days))

    total = sum(raw)
    return [w / total for w in raw]


def describe_model(model: AttributionModel | str) -> dict[str, Any]:
    """Human-readable description of a model for tool responses."""
    model = AttributionModel.parse(model)
    descriptions = {
        AttributionModel.FIRST_TOUCH: "100% credit to the first recorded touch",
        AttributionModel.LAST_TOUCH: "100% credit to the last recorded touch",
        AttributionModel.LINEAR: "Equal credit to every marketing touch",
        AttributionModel.POSITION_BASED: "40% first, 40% last, 20% shared by the middle touches",
        AttributionModel.U_SHAPED: "40% first, 40% last, 20% shared by the middle touches",
        AttributionModel.TIME_DECAY: "Credit halves for every half-life before the conversion",
    }
    return {"model": model.value, "description": descriptions[model]}
