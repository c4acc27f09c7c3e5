"""Action dispatcher: the single boundary between callers and the gateway.

Every public method returns an ``Ok`` or an ``Err``; nothing raises.  The
order of work inside each call is fixed:

  1. local validation (no remote call on failure)
  2. take the per-credential lock (exclusive for mutations, shared for
     queries)
  3. load the stored credential (``AUTH_REQUIRED`` if absent)
  4. call the gateway, timing it for metrics
  5. on failure: one diagnostic capture, then an ``Err`` with the stable code

Lifecycle of the credential as seen from here::

    ABSENT → AUTHENTICATING → AUTHENTICATED ⇄ ACTION_IN_FLIGHT
                                   │
                                   ├─ clear ────────────→ ABSENT
                                   └─ remote rejects it → EXPIRED → AUTHENTICATING

``EXPIRED`` is only a hint for status reporting; the next ``authenticate``
call leaves it.  Nothing here retries automatically.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any, Generic, TypeVar

from focusmate_agent.config import (
    CREDENTIAL_MAX_AGE_HOURS,
    DEFAULT_DURATION,
    SCREENSHOTS_DIRNAME,
    ensure_home,
)
from focusmate_agent.errors import (
    AuthRequiredError,
    ErrorCode,
    FocusmateError,
    SessionNotFoundError,
)
from focusmate_agent.locking import CredentialLock
from focusmate_agent.models import CredentialArtifact, SessionRecord, utcnow
from focusmate_agent.services.credential_store import CredentialStore
from focusmate_agent.services.diagnostics import DiagnosticCapture
from focusmate_agent.services.gateway import RemoteActionGateway
from focusmate_agent.services.metrics import MetricsClient, metrics
from focusmate_agent.validation import resolve_date_range, validate_booking

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    code: ErrorCode
    message: str
    diagnostic: str | None = None


Outcome = Ok | Err


class CredentialState(StrEnum):
    ABSENT = "absent"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ACTION_IN_FLIGHT = "action_in_flight"
    EXPIRED = "expired"


class ActionDispatcher:
    """Validates, serialises and classifies the four Focusmate operations."""

    def __init__(
        self,
        gateway: RemoteActionGateway,
        store: CredentialStore,
        diagnostics: DiagnosticCapture | None = None,
        *,
        credential_max_age: timedelta = timedelta(hours=CREDENTIAL_MAX_AGE_HOURS),
        lock_timeout: float | None = None,
        clock: Callable[[], datetime] = utcnow,
        metrics_client: MetricsClient | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._diagnostics = diagnostics
        self._max_age = credential_max_age
        self._lock_timeout = lock_timeout
        self._clock = clock
        self._metrics = metrics_client or metrics
        self._lock = CredentialLock()

        self._phase_lock = threading.Lock()
        self._authenticating = False
        self._expired = False
        self._in_flight = 0

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def state(self) -> CredentialState:
        with self._phase_lock:
            if self._authenticating:
                return CredentialState.AUTHENTICATING
            if self._in_flight:
                return CredentialState.ACTION_IN_FLIGHT
            expired = self._expired
        # An unreadable file counts as no credential at all.
        if self._store.get() is None:
            return CredentialState.ABSENT
        if expired:
            return CredentialState.EXPIRED
        return CredentialState.AUTHENTICATED

    def status(self) -> dict[str, Any]:
        """Snapshot of the credential for health checks."""
        state = self.state
        artifact = self._store.get()
        age = artifact.age() if artifact is not None else None
        return {
            "state": state.value,
            "authenticated": artifact is not None,
            "credentialAgeSeconds": int(age.total_seconds()) if age is not None else None,
            "fresh": age is not None and age < self._max_age,
        }

    def _set_flags(self, **flags: Any) -> None:
        with self._phase_lock:
            for name, value in flags.items():
                setattr(self, f"_{name}", value)

    def _busy(self) -> Err:
        return Err(
            ErrorCode.ACTION_FAILED,
            "Another Focusmate action is still in progress. Please try again shortly.",
        )

    # ── Gateway call wrapper ─────────────────────────────────────────

    def _call(self, operation: str, fn: Callable[[], T]) -> Ok[T] | Err:
        t0 = time.perf_counter()
        try:
            value = fn()
        except FocusmateError as exc:
            code, message = exc.code, exc.message
        except Exception as exc:
            logger.exception("Unexpected failure during %s", operation)
            code, message = ErrorCode.ACTION_FAILED, f"{operation} failed: {exc}"
        else:
            elapsed = (time.perf_counter() - t0) * 1000
            self._metrics.record_success("gateway", operation, latency_ms=elapsed)
            return Ok(value)

        elapsed = (time.perf_counter() - t0) * 1000
        self._metrics.record_failure("gateway", operation, error_type=code.value, latency_ms=elapsed)
        diagnostic = self._diagnostics.capture(operation, detail=message) if self._diagnostics else None
        if diagnostic:
            message = f"{message} Diagnostic saved to {diagnostic}"
        logger.warning("%s failed with %s: %s", operation, code.value, message)
        return Err(code, message, diagnostic)

    def _with_credential(
        self,
        operation: str,
        *,
        exclusive: bool,
        action: Callable[[CredentialArtifact], T],
    ) -> Ok[T] | Err:
        with self._lock.hold(exclusive, self._lock_timeout) as admitted:
            if not admitted:
                return self._busy()
            credential = self._store.get()
            if credential is None:
                return Err(ErrorCode.AUTH_REQUIRED, AuthRequiredError().message)

            checks_credential = self._gateway.presents_credential(operation)
            with self._phase_lock:
                self._in_flight += 1
            try:
                outcome = self._call(operation, lambda: action(credential))
            finally:
                with self._phase_lock:
                    self._in_flight -= 1

            if not checks_credential:
                return outcome
            if isinstance(outcome, Ok):
                self._set_flags(expired=False)
                try:
                    self._store.mark_validated()
                except OSError:
                    logger.warning("Could not record credential validation time", exc_info=True)
            elif outcome.code == ErrorCode.AUTH_EXPIRED:
                self._set_flags(expired=True)
            return outcome

    # ── Operations ───────────────────────────────────────────────────

    def authenticate(self, force: bool = False) -> Ok[str] | Err:
        """Log in interactively unless a fresh credential already exists.

        ``force`` discards the stored credential before starting.
        """
        with self._lock.hold(True, self._lock_timeout) as admitted:
            if not admitted:
                return self._busy()

            if force:
                self._store.clear()
            elif not self._expired and self._store.is_fresh(self._max_age):
                return Ok("Already authenticated. Use force=true to re-authenticate.")

            self._set_flags(authenticating=True)
            try:
                outcome = self._call("authenticate", lambda: self._gateway.authenticate(interactive=True))
                if isinstance(outcome, Err):
                    return outcome
                try:
                    self._store.put(outcome.value.artifact)
                except OSError as exc:
                    logger.exception("Failed to persist credential")
                    return Err(ErrorCode.ACTION_FAILED, f"Could not save credentials: {exc}")
                self._set_flags(expired=False)
                return Ok(outcome.value.message)
            finally:
                self._set_flags(authenticating=False)

    def logout(self) -> Ok[str] | Err:
        """Forget the stored credential."""
        with self._lock.hold(True, self._lock_timeout) as admitted:
            if not admitted:
                return self._busy()
            self._store.clear()
            self._set_flags(expired=False)
            return Ok("Stored credentials removed.")

    def book(self, start_time: str | datetime, duration: int | str = DEFAULT_DURATION) -> Ok[SessionRecord] | Err:
        try:
            request = validate_booking(start_time, duration, now=self._clock())
        except FocusmateError as exc:
            return Err(exc.code, exc.message)

        return self._with_credential(
            "book-session",
            exclusive=True,
            action=lambda credential: self._gateway.perform_booking(request, credential),
        )

    def cancel(self, session_id: str) -> Ok[str] | Err:
        session_id = (session_id or "").strip()
        if not session_id:
            return Err(ErrorCode.SESSION_NOT_FOUND, SessionNotFoundError("<empty>").message)

        outcome = self._with_credential(
            "cancel-session",
            exclusive=True,
            action=lambda credential: self._gateway.perform_cancellation(session_id, credential),
        )
        if isinstance(outcome, Ok):
            return Ok(outcome.value.message)
        return outcome

    def list_sessions(
        self,
        start_date: str | datetime,
        end_date: str | datetime | None = None,
    ) -> Ok[list[SessionRecord]] | Err:
        try:
            date_range = resolve_date_range(start_date, end_date)
        except FocusmateError as exc:
            return Err(exc.code, exc.message)

        outcome = self._with_credential(
            "list-sessions",
            exclusive=False,
            action=lambda credential: self._gateway.query_history(date_range, credential),
        )
        if isinstance(outcome, Err):
            return outcome
        sessions = sorted(
            (s for s in outcome.value if date_range.contains(s.start_time)),
            key=lambda s: s.start_time,
        )
        return Ok(sessions)


# ── Factory ──────────────────────────────────────────────────────────


def build_dispatcher(
    root: Path | None = None,
    gateway: RemoteActionGateway | None = None,
) -> ActionDispatcher:
    """Wire the production dispatcher: browser gateway, on-disk store, screenshots."""
    if gateway is None:
        from focusmate_agent.services.browser_gateway import BrowserGateway  # noqa: PLC0415

        gateway = BrowserGateway()
    home = ensure_home(root)
    return ActionDispatcher(
        gateway,
        CredentialStore(home),
        DiagnosticCapture(home / SCREENSHOTS_DIRNAME, snapshot_source=gateway.snapshot),
    )
