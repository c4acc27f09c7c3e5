"""HTTP client for the Focusmate public API with retry logic, timeout handling
and a partner-profile cache.

The public API is read-only: it can list sessions and look up profiles but
cannot book or cancel.  All requests carry the personal API key in the
``X-API-Key`` header.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from focusmate_agent.config import FOCUSMATE_API_URL
from focusmate_agent.errors import AuthExpiredError, FocusmateAPIError
from focusmate_agent.models import DateRange, SessionRecord, derive_status, utcnow
from focusmate_agent.services.cache import TTLCache

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

_CK_PROFILE = "profile:"


def _parse_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _iso_z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class FocusmateClient:
    """Thin wrapper around the Focusmate REST API with automatic retries.

    Only GET requests exist, so every transport error and 5xx response is
    safe to retry.  4xx responses are never retried: 401 means the key was
    rejected and surfaces as ``AuthExpiredError``; the rest become
    ``FocusmateAPIError``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        cache: TTLCache | None = None,
    ):
        self._base_url = base_url or FOCUSMATE_API_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "X-API-Key": api_key,
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._user_id: str | None = None
        self._cache = cache or TTLCache()

    def close(self) -> None:
        self._client.close()

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(self, path: str, *, params: dict[str, str] | None = None) -> dict[str, Any]:
        """Execute a GET request with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.get(path, params=params)
                if response.status_code == 401:
                    raise AuthExpiredError(
                        "Invalid API key. Please check your Focusmate API key."
                    )
                if response.status_code == 429:
                    raise FocusmateAPIError(
                        "Rate limit exceeded. Please wait before making more requests.",
                        status_code=429,
                    )
                if response.status_code >= 500:
                    raise FocusmateAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise FocusmateAPIError(
                        f"API request failed with {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Focusmate API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except FocusmateAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Focusmate API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise FocusmateAPIError(
            f"Focusmate API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    def _to_record(self, api_session: dict[str, Any], now: datetime) -> SessionRecord:
        start = _parse_instant(api_session["startTime"])
        duration_ms = int(api_session.get("duration", 0))
        end = start + timedelta(milliseconds=duration_ms)
        users = api_session.get("users") or []

        me = next((u for u in users if u.get("userId") == self._user_id), None)
        if me is None and users:
            me = users[0]
        partner = next((u for u in users if u is not me), None)

        return SessionRecord(
            id=api_session["sessionId"],
            start_time=start,
            duration=round(duration_ms / 60_000),
            status=derive_status(
                now,
                start,
                end,
                completed=bool(me and me.get("completed")),
                has_partner=partner is not None,
            ),
            partner_id=partner.get("userId") if partner else None,
            title=(me or {}).get("sessionTitle"),
        )

    # ── Public API methods ───────────────────────────────────────────

    def get_profile(self) -> dict[str, Any]:
        """Return the authenticated user's profile (``/me``)."""
        data = self._request("/me")
        user = data.get("user", {})
        self._user_id = user.get("userId")
        return user

    def get_current_user_id(self) -> str | None:
        if self._user_id is None:
            self.get_profile()
        return self._user_id

    def get_sessions(self, date_range: DateRange) -> list[SessionRecord]:
        """List the user's sessions whose start falls inside *date_range*."""
        self.get_current_user_id()
        data = self._request(
            "/sessions",
            params={"start": _iso_z(date_range.start), "end": _iso_z(date_range.end)},
        )
        now = utcnow()
        return [self._to_record(s, now) for s in data.get("sessions", [])]

    def get_partner_name(self, user_id: str) -> str | None:
        """Look up a partner's display name (cached)."""
        cache_key = f"{_CK_PROFILE}{user_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = self._request(f"/users/{user_id}")
        name = data.get("user", {}).get("name")
        if name:
            self._cache.put(cache_key, name)
        return name

    def enrich_with_partner_names(self, sessions: list[SessionRecord]) -> list[SessionRecord]:
        """Fill in ``partner_name`` where a partner id is known.

        A failed lookup leaves that session without a name; it never fails
        the whole listing.
        """
        enriched: list[SessionRecord] = []
        for session in sessions:
            if session.partner_id and not session.partner_name:
                try:
                    name = self.get_partner_name(session.partner_id)
                except FocusmateAPIError:
                    logger.warning("Could not fetch profile for partner %s", session.partner_id)
                    name = None
                if name:
                    session = session.model_copy(update={"partner_name": name})
            enriched.append(session)
        return enriched
