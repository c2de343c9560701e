"""
Touch ingestion - turns an observed page view into session and journal writes.

Flow for one request:
1. Detect consent. Denied visitors get an anonymous event and nothing else.
2. Build the touch (UTM fields, external referrer, landing path).
3. Create the session if there is none, otherwise refresh its last touch and
   click identifiers when the touch carries marketing data.
4. Journal the touch when it carries marketing signal.
5. Log a page_view event.

Each step is a separate store call and nothing is wrapped in a transaction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qsl, urlparse

from halotrack.tracking.device import (
    client_ip,
    detect_consent,
    facebook_browser_ids,
    hash_ip,
    parse_user_agent,
    primary_language,
    referrer_domain,
)
from halotrack.tracking.journal import TouchpointJournal
from halotrack.tracking.schema import (
    URL_CLICK_ID_FIELDS,
    AnonymousEvent,
    ClickIds,
    ConsentStatus,
    DeviceData,
    Session,
    TouchData,
    TrackedEvent,
    has_marketing_signal,
)
from halotrack.tracking.store import EventStore, SessionStore, TouchpointStore

logger = logging.getLogger(__name__)

SESSION_COOKIE = "_halo"


@dataclass
class TouchRequest:
    """Already-extracted inputs of one tracked page view."""

    session_id: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    gclid: str | None = None
    gbraid: str | None = None
    wbraid: str | None = None
    fbclid: str | None = None
    ttclid: str | None = None
    msclkid: str | None = None
    referrer: str | None = None  # Full referrer URL
    landing: str | None = None  # Path plus query string
    consent: ConsentStatus | None = None  # Explicit consent overrides cookies
    user_agent: str | None = None
    forwarded_for: str | None = None
    accept_language: str | None = None
    country: str | None = None
    city: str | None = None
    region: str | None = None
    cookies: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_url(
        cls,
        url: str,
        referrer: str | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
    ) -> TouchRequest:
        """Build a request from a landing URL plus request headers and cookies.

        Example:
            >>> request = TouchRequest.from_url(
            ...     "https://shop.example/?utm_source=google&utm_medium=cpc&gclid=abc",
            ...     referrer="https://www.google.com/",
            ... )
            >>> request.utm_source, request.gclid, request.landing
            ('google', 'abc', '/?utm_source=google&utm_medium=cpc&gclid=abc')
        """
        parsed = urlparse(url)
        params = dict(parse_qsl(parsed.query))
        headers = {k.lower(): v for k, v in (headers or {}).items()}
        cookies = cookies or {}
        landing = parsed.path or "/"
        if parsed.query:
            landing = f"{landing}?{parsed.query}"

        return cls(
            session_id=cookies.get(SESSION_COOKIE),
            utm_source=params.get("utm_source"),
            utm_medium=params.get("utm_medium"),
            utm_campaign=params.get("utm_campaign"),
            utm_term=params.get("utm_term"),
            utm_content=params.get("utm_content"),
            gclid=params.get("gclid"),
            gbraid=params.get("gbraid"),
            wbraid=params.get("wbraid"),
            fbclid=params.get("fbclid"),
            ttclid=params.get("ttclid"),
            msclkid=params.get("msclkid"),
            referrer=referrer or headers.get("referer"),
            landing=landing,
            user_agent=headers.get("user-agent"),
            forwarded_for=headers.get("x-forwarded-for"),
            accept_language=headers.get("accept-language"),
            country=headers.get("x-vercel-ip-country"),
            city=headers.get("x-vercel-ip-city"),
            region=headers.get("x-vercel-ip-region"),
            cookies=cookies,
            query_params=params,
        )

    def url_click_ids(self) -> ClickIds:
        """Click identifiers carried on the landing URL."""
        return ClickIds(**{name: getattr(self, name) or None for name in URL_CLICK_ID_FIELDS})


@dataclass
class TouchResult:
    """Outcome of recording a touch."""

    session_id: str | None
    consent_status: ConsentStatus
    created: bool = False
    touchpoint_number: int | None = None
    anonymous: bool = False
    fbc: str | None = None
    fbp: str | None = None


class TouchRecorder:
    """Records page views against sessions and the touchpoint journal.

    Example:
        recorder = TouchRecorder(sessions, touchpoints, events, site_host="shop.example")
        result = recorder.record("acme", TouchRequest.from_url(url, headers=headers, cookies=cookies))
        # set the _halo cookie to result.session_id
    """

    def __init__(
        self,
        sessions: SessionStore,
        touchpoints: TouchpointStore,
        events: EventStore | None = None,
        site_host: str | None = None,
    ):
        self.sessions = sessions
        self.journal = TouchpointJournal(touchpoints)
        self.events = events
        self.site_host = site_host

    def record(self, client_id: str, request: TouchRequest) -> TouchResult:
        """Record one page view.

        A session id that is not found in the store starts a new session under
        that id, so ids handed over from another domain keep working.

        Raises:
            Whatever the stores raise; a failed write aborts the request.
        """
        now = datetime.now(UTC)
        consent = request.consent or detect_consent(request.cookies)
        referrer = referrer_domain(request.referrer, self.site_host)

        touch = TouchData(
            source=request.utm_source or None,
            medium=request.utm_medium or None,
            campaign=request.utm_campaign or None,
            term=request.utm_term or None,
            content=request.utm_content or None,
            referrer=referrer,
            referrer_full=request.referrer,
            landing=request.landing,
            timestamp=now,
        )

        if consent == ConsentStatus.DENIED:
            self._record_anonymous(client_id, touch)
            return TouchResult(session_id=None, consent_status=consent, anonymous=True)

        url_click_ids = request.url_click_ids()
        fbc, fbp = facebook_browser_ids(
            url_click_ids.fbclid,
            request.cookies.get("_fbc"),
            request.cookies.get("_fbp"),
        )

        session_id = request.session_id
        session = self.sessions.get(client_id, session_id) if session_id else None
        created = False

        if session is None:
            session_id = session_id or str(uuid.uuid4())
            session = self._new_session(client_id, session_id, touch, url_click_ids, fbc, fbp, consent, request, now)
            self.sessions.insert(session)
            created = True
            logger.info(f"Created session {session_id} for client {client_id}")
        elif has_marketing_signal(touch, url_click_ids):
            arrived = replace(url_click_ids, fbc=fbc if url_click_ids.fbclid else None)
            self.sessions.update(
                client_id,
                session_id,
                {
                    "last_touch": touch,
                    "click_ids": session.click_ids.merge(arrived),
                    "updated_at": now,
                },
            )
            logger.debug(f"Updated last touch for session {session_id}")

        number = self.journal.record_touch(client_id, session_id, touch, url_click_ids)

        if self.events is not None:
            self.events.insert_event(
                TrackedEvent(
                    client_id=client_id,
                    session_id=session_id,
                    event_name="page_view",
                    page_url=request.landing,
                    created_at=now,
                )
            )

        return TouchResult(
            session_id=session_id,
            consent_status=consent,
            created=created,
            touchpoint_number=number,
            fbc=fbc,
            fbp=fbp,
        )

    def track_event(
        self,
        client_id: str,
        session_id: str | None,
        event_name: str,
        properties: dict[str, Any] | None = None,
        page_url: str | None = None,
    ) -> bool:
        """Store a custom event. Events without a session are ignored.

        Returns:
            True if the event was stored.
        """
        if not session_id or self.events is None:
            return False
        self.events.insert_event(
            TrackedEvent(
                client_id=client_id,
                session_id=session_id,
                event_name=event_name,
                properties=properties or {},
                page_url=page_url,
            )
        )
        return True

    def _record_anonymous(self, client_id: str, touch: TouchData) -> None:
        if not (touch.source or touch.referrer) or self.events is None:
            return
        self.events.insert_anonymous_event(
            AnonymousEvent(
                client_id=client_id,
                utm_source=touch.source,
                utm_medium=touch.medium,
                utm_campaign=touch.campaign,
                utm_term=touch.term,
                utm_content=touch.content,
                referrer_domain=touch.referrer,
                page_path=(touch.landing or "").split("?")[0] or None,
                created_at=touch.timestamp or datetime.now(UTC),
            )
        )

    def _new_session(
        self,
        client_id: str,
        session_id: str,
        touch: TouchData,
        url_click_ids: ClickIds,
        fbc: str | None,
        fbp: str | None,
        consent: ConsentStatus,
        request: TouchRequest,
        now: datetime,
    ) -> Session:
        ua = parse_user_agent(request.user_agent)
        device = DeviceData(
            user_agent=request.user_agent,
            device_type=ua.device_type,
            browser=ua.browser,
            browser_version=ua.browser_version,
            os=ua.os,
            os_version=ua.os_version,
            ip_hash=hash_ip(client_ip(request.forwarded_for)),
            country=request.country,
            city=request.city,
            region=request.region,
            language=primary_language(request.accept_language),
        )
        return Session(
            client_id=client_id,
            session_id=session_id,
            first_touch=touch,
            last_touch=replace(touch, referrer_full=None),
            click_ids=replace(url_click_ids, fbc=fbc, fbp=fbp),
            device=device,
            consent_status=consent,
            custom_params=dict(request.query_params),
            created_at=now,
            updated_at=now,
        )
