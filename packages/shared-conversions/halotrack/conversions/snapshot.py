"""Attribution snapshot stored with each conversion.

The snapshot shape is read back for first-touch and last-touch reporting:

    {
        "session_id": "...",
        "first_touch": {"source", "medium", "campaign", "term", "content",
                        "referrer", "landing", "timestamp"},
        "last_touch": {...same keys...},
        "click_ids": {"gclid", "gbraid", "wbraid", "fbclid", "fbc", "fbp",
                      "ttclid", "msclkid"},
        "device": {"type", "browser", "os", "country"},
        "match_type": "session" | "email" | "phone" | "customer_id",
    }

Unattributed conversions store only {"match_type": "none"}.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from halotrack.conversions.schema import MatchType
from halotrack.tracking.schema import Session

SECONDS_PER_DAY = 86400


def build_attribution_snapshot(session: Session | None, match_type: MatchType) -> dict[str, Any]:
    """Copy the session's attribution blocks into a standalone dict."""
    if session is None:
        return {"match_type": MatchType.NONE.value}

    return {
        "session_id": session.session_id,
        "first_touch": session.first_touch.to_dict(),
        "last_touch": session.last_touch.to_dict(),
        "click_ids": session.click_ids.to_dict(),
        "device": session.device.to_dict(),
        "match_type": MatchType(match_type).value,
    }


def days_to_convert(session: Session | None, conversion_time: datetime) -> int | None:
    """Whole days between the session's first touch and the conversion.

    Returns None when there is no session or no first-touch timestamp.
    """
    if session is None or session.first_touch.timestamp is None:
        return None
    elapsed = (conversion_time - session.first_touch.timestamp).total_seconds()
    return int(elapsed // SECONDS_PER_DAY)
