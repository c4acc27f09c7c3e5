"""Playwright-driven gateway to the Focusmate web app.

Booking and cancelling have no public API, so they are performed by driving
a Chromium page the way a user would.  Listing prefers the read-only REST
API when an API key is configured and falls back to reading the dashboard.

Every browser context is created in UTC so the calendar's row and column
labels line up with the UTC instants the dispatcher hands us.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from focusmate_agent.config import (
    AUTH_TIMEOUT_SECONDS,
    BROWSER_HEADLESS,
    FOCUSMATE_APP_URL,
    get_api_key,
)
from focusmate_agent.errors import (
    ActionFailedError,
    AuthExpiredError,
    AuthTimeoutError,
    SessionConflictError,
    SessionNotFoundError,
    SlotUnavailableError,
)
from focusmate_agent.models import (
    AuthResult,
    BookingRequest,
    Confirmation,
    CredentialArtifact,
    DateRange,
    SessionRecord,
    derive_status,
    utcnow,
)
from focusmate_agent.services.cache import TTLCache
from focusmate_agent.services.focusmate_client import FocusmateClient
from focusmate_agent.services.gateway import RemoteActionGateway

logger = logging.getLogger(__name__)

LOGIN_URL = f"{FOCUSMATE_APP_URL}/login"
DASHBOARD_URL = f"{FOCUSMATE_APP_URL}/dashboard"

# ── Timeouts (milliseconds, as Playwright expects) ──────────────────
PROBE_TIMEOUT_MS = 1_000
ELEMENT_TIMEOUT_MS = 5_000
BOOKING_SETTLE_TIMEOUT_MS = 30_000

_SESSION_HREF = re.compile(r"/session/([^/?#]+)")
_CLOCK = r"(\d{1,2}):(\d{2})\s*([ap]m)"
_CARD_TIMES = re.compile(rf"{_CLOCK}\s*-\s*{_CLOCK}", re.IGNORECASE)
_CARD_DURATION = re.compile(r"^(25|50|75)$")
# Card lines that are never the partner's name.
_CARD_NOISE = re.compile(
    r"^(\d{1,2}:\d{2}\s*[ap]m\s*-.*|25|50|75|join|clear|starts in.*|≋|…|×|\.{3})$",
    re.IGNORECASE,
)


def _hour_label(hour: int) -> str:
    """Calendar row label for a 24h hour, e.g. 0 → ``12am``, 13 → ``1pm``."""
    suffix = "am" if hour < 12 else "pm"
    return f"{(hour % 12) or 12}{suffix}"


def _day_header(day: datetime) -> str:
    return f"{day.strftime('%a')} {day.day}"


def _visible(locator: Locator, timeout_ms: int = PROBE_TIMEOUT_MS) -> bool:
    """True if *locator* shows up within *timeout_ms*."""
    try:
        locator.first.wait_for(timeout=timeout_ms)
        return True
    except PlaywrightTimeoutError:
        return False


class BrowserGateway(RemoteActionGateway):
    """Performs Focusmate actions in a fresh browser context per call.

    ``api_key_source`` and ``client_factory`` exist so listings can go
    through the REST API; both default to the real implementations.  One
    partner-profile cache is shared by every REST client this gateway makes.
    """

    def __init__(
        self,
        *,
        headless: bool = BROWSER_HEADLESS,
        auth_timeout: float = AUTH_TIMEOUT_SECONDS,
        api_key_source: Callable[[], str | None] = get_api_key,
        client_factory: Callable[..., FocusmateClient] = FocusmateClient,
    ) -> None:
        self._headless = headless
        self._auth_timeout = auth_timeout
        self._api_key_source = api_key_source
        self._client_factory = client_factory
        self._profile_cache = TTLCache()
        # Failure screenshots are kept per thread; concurrent listings share this gateway.
        self._local = threading.local()

    def snapshot(self) -> bytes | None:
        return getattr(self._local, "snapshot", None)

    def presents_credential(self, operation: str) -> bool:
        # REST listings authenticate with the API key, not the browser state.
        return not (operation == "list-sessions" and self._api_key_source())

    # ── Browser plumbing ─────────────────────────────────────────────

    @contextmanager
    def _page(
        self,
        credential: CredentialArtifact | None = None,
        *,
        headless: bool | None = None,
    ) -> Iterator[Page]:
        """Yield a page in a new context; remember a screenshot if the body fails."""
        self._local.snapshot = None
        with sync_playwright() as pw:
            browser = pw.chromium.launch(
                headless=self._headless if headless is None else headless,
            )
            try:
                context = browser.new_context(
                    storage_state=credential.payload if credential else None,
                    timezone_id="UTC",
                    locale="en-US",
                )
                page = context.new_page()
                try:
                    yield page
                except Exception:
                    self._remember_failure(page)
                    raise
                finally:
                    context.close()
            finally:
                browser.close()

    def _remember_failure(self, page: Page) -> None:
        try:
            self._local.snapshot = page.screenshot(full_page=True)
        except PlaywrightError:
            logger.debug("Could not screenshot the failed page", exc_info=True)

    @staticmethod
    def _open_authenticated(page: Page, url: str) -> None:
        """Navigate to *url*; a redirect to the login page means the credential is dead."""
        page.goto(url, wait_until="domcontentloaded")
        page.wait_for_timeout(1_000)
        if "/login" in page.url or "/signin" in page.url:
            raise AuthExpiredError()

    @staticmethod
    def _looks_logged_in(page: Page) -> bool:
        if "/login" in page.url:
            return False
        return _visible(page.get_by_role("button", name=re.compile("book", re.I)), ELEMENT_TIMEOUT_MS)

    # ── Authenticate ─────────────────────────────────────────────────

    def authenticate(self, interactive: bool = True) -> AuthResult:
        """Open a visible login page and wait for the user to finish signing in."""
        with self._page(headless=not interactive) as page:
            page.goto(LOGIN_URL)
            logger.info("Waiting up to %.0fs for Focusmate login", self._auth_timeout)

            deadline = time.monotonic() + self._auth_timeout
            while time.monotonic() < deadline:
                page.wait_for_timeout(1_000)
                url = page.url
                if ("/dashboard" in url or "/home" in url) and self._looks_logged_in(page):
                    state = page.context.storage_state()
                    logger.info("Focusmate login detected")
                    return AuthResult(artifact=CredentialArtifact(payload=state))

        raise AuthTimeoutError()

    # ── Book ─────────────────────────────────────────────────────────

    def perform_booking(
        self, request: BookingRequest, credential: CredentialArtifact,
    ) -> SessionRecord:
        with self._page(credential) as page:
            self._open_authenticated(page, DASHBOARD_URL)
            page.wait_for_load_state("networkidle")

            self._select_duration(page, request.duration)
            self._click_slot(page, request.start_time)

            if _visible(page.get_by_text(re.compile(r"already have a session|conflict", re.I))):
                raise SessionConflictError()
            if _visible(page.get_by_text(re.compile(r"not available|fully booked", re.I))):
                raise SlotUnavailableError()

            book = page.get_by_role("button", name="Book", exact=True)
            try:
                book.wait_for(timeout=ELEMENT_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                raise SlotUnavailableError() from None
            book.click()
            book.wait_for(state="hidden", timeout=BOOKING_SETTLE_TIMEOUT_MS)

            session_id = self._read_session_id(page)
            logger.info("Booked session %s at %s", session_id or "<unknown id>", request.start_time.isoformat())
            return SessionRecord.from_booking(request, session_id)

    @staticmethod
    def _select_duration(page: Page, minutes: int) -> None:
        page.get_by_role("button", name=f"{minutes} min", exact=True).click()
        page.wait_for_timeout(500)

    def _click_slot(self, page: Page, start: datetime) -> None:
        """Click the calendar cell for *start*.

        The calendar is a grid of hour rows by day columns; the click point
        is the target day's column centre at the target hour row plus the
        minute offset, measured against the next hour's label.
        """
        header = page.get_by_text(_day_header(start), exact=True).first
        for _ in range(10):
            if _visible(header):
                break
            page.get_by_role("button", name=re.compile(r"next", re.I)).first.click()
            page.wait_for_timeout(300)
        header_box = header.bounding_box()
        if header_box is None:
            raise ActionFailedError(f"Could not find the calendar column for {_day_header(start)}.")

        label = page.get_by_text(_hour_label(start.hour), exact=True).first
        label.scroll_into_view_if_needed(timeout=ELEMENT_TIMEOUT_MS)
        label_box = label.bounding_box()
        next_box = page.get_by_text(_hour_label((start.hour + 1) % 24), exact=True).first.bounding_box()
        if label_box is None or next_box is None:
            raise ActionFailedError(f"Could not find the calendar row for {_hour_label(start.hour)}.")

        pixels_per_hour = next_box["y"] - label_box["y"]
        x = header_box["x"] + header_box["width"] / 2
        y = label_box["y"] + (start.minute / 60) * pixels_per_hour + 10
        page.mouse.click(x, y)
        page.wait_for_timeout(500)

    @staticmethod
    def _read_session_id(page: Page) -> str | None:
        try:
            href = page.locator('a[href*="/session/"]').first.get_attribute("href", timeout=2_000)
        except PlaywrightTimeoutError:
            return None
        match = _SESSION_HREF.search(href or "")
        return match.group(1) if match else None

    # ── Cancel ───────────────────────────────────────────────────────

    def perform_cancellation(
        self, session_id: str, credential: CredentialArtifact,
    ) -> Confirmation:
        with self._page(credential) as page:
            self._open_authenticated(page, f"{FOCUSMATE_APP_URL}/session/{session_id}")
            page.wait_for_load_state("networkidle")

            not_found = page.get_by_text(re.compile(r"not found|doesn't exist|404", re.I))
            if _visible(not_found, 2_000):
                raise SessionNotFoundError(session_id)

            cancel = page.get_by_role("button", name=re.compile(r"cancel session|^cancel$", re.I)).first
            try:
                cancel.click(timeout=ELEMENT_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                raise SessionNotFoundError(session_id) from None

            confirm = page.get_by_role("button", name=re.compile(r"^(cancel|confirm|yes.*cancel)$", re.I))
            if _visible(confirm, 3_000):
                confirm.first.click()

            if not _visible(page.get_by_text(re.compile("cancelled", re.I)), 3_000):
                page.wait_for_timeout(1_000)

            logger.info("Cancelled session %s", session_id)
            return Confirmation(session_id=session_id, message=f"Session {session_id} has been cancelled.")

    # ── List ─────────────────────────────────────────────────────────

    def query_history(
        self, date_range: DateRange, credential: CredentialArtifact,
    ) -> list[SessionRecord]:
        api_key = self._api_key_source()
        if api_key:
            client = self._client_factory(api_key, cache=self._profile_cache)
            try:
                return client.enrich_with_partner_names(client.get_sessions(date_range))
            finally:
                client.close()
        return self._scrape_upcoming(date_range, credential)

    def _scrape_upcoming(
        self, date_range: DateRange, credential: CredentialArtifact,
    ) -> list[SessionRecord]:
        """Read session cards off the dashboard; only upcoming sessions are shown there."""
        with self._page(credential) as page:
            self._open_authenticated(page, DASHBOARD_URL)
            page.wait_for_load_state("networkidle")

            now = utcnow()
            records: list[SessionRecord] = []
            cards = page.locator('a[href*="/session/"]')
            for i in range(cards.count()):
                card = cards.nth(i)
                record = _card_to_record(card.get_attribute("href") or "", card.inner_text(), date_range, now)
                if record is not None:
                    records.append(record)
            return records


def _clock_minutes(hour: str, minute: str, meridiem: str) -> int:
    return (int(hour) % 12 + (12 if meridiem.lower() == "pm" else 0)) * 60 + int(minute)


def _card_to_record(
    href: str, text: str, date_range: DateRange, now: datetime,
) -> SessionRecord | None:
    """Best-effort parse of one dashboard session card.

    A card's text reads line by line like ``5:30pm - 5:55pm``, ``25``,
    ``≋``, ``Trung V.``, ``Join``.  Cards show a clock time but no date, so
    the session is placed on the first day of *date_range* whose slot is not
    already in the past.
    """
    id_match = _SESSION_HREF.search(href)
    times = _CARD_TIMES.search(text)
    if not id_match or not times:
        return None

    start_minutes = _clock_minutes(*times.group(1, 2, 3))
    end_minutes = _clock_minutes(*times.group(4, 5, 6))
    lines = [line.strip() for line in text.splitlines() if line.strip()]

    duration = next((int(line) for line in lines if _CARD_DURATION.match(line)), None)
    if duration is None:
        # The end may fall after midnight.
        span = (end_minutes - start_minutes) % (24 * 60)
        duration = span if span in (25, 50, 75) else 50

    partner_name = next(
        (
            line for line in lines
            if len(line) > 1 and re.search("[a-z]", line, re.I) and not _CARD_NOISE.match(line)
        ),
        None,
    )

    day = max(date_range.start, now)
    start = day.replace(hour=start_minutes // 60, minute=start_minutes % 60, second=0, microsecond=0)
    if start < day:
        start += timedelta(days=1)
    return SessionRecord(
        id=id_match.group(1),
        start_time=start,
        duration=duration,
        status=derive_status(
            now,
            start,
            start + timedelta(minutes=duration),
            has_partner=partner_name is not None,
        ),
        partner_name=partner_name,
    )
