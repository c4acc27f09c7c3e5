"""Tests for the ActionDispatcher: ordering, classification and serialisation."""

from __future__ import annotations

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from stubs import NOW

from focusmate_agent.dispatcher import ActionDispatcher, CredentialState, Err, Ok
from focusmate_agent.errors import (
    AuthExpiredError,
    AuthTimeoutError,
    ErrorCode,
    SessionNotFoundError,
    SlotUnavailableError,
)
from focusmate_agent.models import CredentialArtifact, SessionRecord, SessionStatus
from focusmate_agent.services.diagnostics import DiagnosticCapture
from focusmate_agent.services.metrics import MetricsClient

FUTURE_SLOT = "2026-03-03T14:30:00Z"


def _record(session_id: str, start: str, duration: int = 50) -> SessionRecord:
    return SessionRecord(
        id=session_id,
        start_time=start,
        duration=duration,
        status=SessionStatus.PENDING,
    )


# ── Authenticate ─────────────────────────────────────────────────────


class TestAuthenticate:
    def test_first_login_stores_credential(self, dispatcher, gateway, store):
        outcome = dispatcher.authenticate()
        assert isinstance(outcome, Ok)
        assert store.has() is True
        assert gateway.calls == ["authenticate"]
        assert dispatcher.state == CredentialState.AUTHENTICATED

    def test_fresh_credential_short_circuits(self, dispatcher, gateway, authenticated):
        outcome = dispatcher.authenticate()
        assert isinstance(outcome, Ok)
        assert "Already authenticated" in outcome.value
        assert gateway.calls == []

    def test_stale_credential_triggers_login(self, gateway, store, diagnostics):
        store.put(CredentialArtifact(payload={}, created_at=NOW - timedelta(days=3)))
        dispatcher = ActionDispatcher(gateway, store, diagnostics, metrics_client=MetricsClient())
        outcome = dispatcher.authenticate()
        assert isinstance(outcome, Ok)
        assert gateway.calls == ["authenticate"]

    def test_force_replaces_credential(self, dispatcher, gateway, store, authenticated):
        outcome = dispatcher.authenticate(force=True)
        assert isinstance(outcome, Ok)
        assert gateway.calls == ["authenticate"]
        assert store.get().payload == {"cookies": [{"name": "fresh"}]}

    def test_timeout_leaves_store_empty_after_force(self, dispatcher, gateway, store, authenticated):
        gateway.auth_error = AuthTimeoutError()
        outcome = dispatcher.authenticate(force=True)
        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.AUTH_TIMEOUT
        assert store.has() is False
        assert dispatcher.state == CredentialState.ABSENT

    def test_rejected_credential_is_not_short_circuited(self, dispatcher, gateway, authenticated):
        gateway.booking_error = AuthExpiredError()
        dispatcher.book(FUTURE_SLOT)
        assert dispatcher.state == CredentialState.EXPIRED

        outcome = dispatcher.authenticate()
        assert isinstance(outcome, Ok)
        assert gateway.calls == ["perform_booking", "authenticate"]
        assert dispatcher.state == CredentialState.AUTHENTICATED

    def test_logout_clears_credential(self, dispatcher, store, authenticated):
        assert isinstance(dispatcher.logout(), Ok)
        assert store.has() is False
        assert dispatcher.state == CredentialState.ABSENT


# ── Book ─────────────────────────────────────────────────────────────


class TestBook:
    def test_requires_credential(self, dispatcher, gateway):
        outcome = dispatcher.book(FUTURE_SLOT)
        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.AUTH_REQUIRED
        assert gateway.calls == []

    @pytest.mark.parametrize(
        "start_time",
        [
            (NOW - timedelta(hours=1)).isoformat(),
            "2026-03-03T14:10:00Z",
            "2026-03-03T14:15:30Z",
            "2026-03-03T14:30:00",
            "tomorrow at three",
        ],
    )
    def test_invalid_start_never_reaches_gateway(self, dispatcher, gateway, authenticated, start_time):
        outcome = dispatcher.book(start_time)
        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.INVALID_TIME
        assert gateway.calls == []

    @pytest.mark.parametrize("duration", [30, "60", "long", 0])
    def test_invalid_duration(self, dispatcher, gateway, authenticated, duration):
        outcome = dispatcher.book(FUTURE_SLOT, duration)
        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.INVALID_DURATION
        assert gateway.calls == []

    @pytest.mark.parametrize("duration", [25, 50, 75])
    def test_booked_session_spans_its_duration(self, dispatcher, authenticated, duration):
        outcome = dispatcher.book(FUTURE_SLOT, str(duration))
        assert isinstance(outcome, Ok)
        session = outcome.value
        assert session.end_time - session.start_time == timedelta(minutes=duration)
        assert session.status == SessionStatus.PENDING

    def test_success_marks_credential_validated(self, dispatcher, store, authenticated):
        dispatcher.book(FUTURE_SLOT)
        assert store.get().last_validated_at is not None

    def test_slot_unavailable_captures_one_diagnostic(self, gateway, store, authenticated):
        gateway.booking_error = SlotUnavailableError()
        diagnostics = MagicMock(spec=DiagnosticCapture)
        diagnostics.capture.return_value = "/tmp/book-session-error.png"
        dispatcher = ActionDispatcher(
            gateway, store, diagnostics, clock=lambda: NOW, metrics_client=MetricsClient(),
        )

        outcome = dispatcher.book(FUTURE_SLOT)

        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.SLOT_UNAVAILABLE
        assert outcome.diagnostic == "/tmp/book-session-error.png"
        assert "Diagnostic saved to /tmp/book-session-error.png" in outcome.message
        diagnostics.capture.assert_called_once()
        assert diagnostics.capture.call_args[0][0] == "book-session"

    def test_diagnostic_written_to_disk(self, dispatcher, gateway, diagnostics, authenticated):
        gateway.booking_error = SlotUnavailableError()
        gateway.snapshot_bytes = b"\x89PNG fake"
        outcome = dispatcher.book(FUTURE_SLOT)
        assert outcome.diagnostic.endswith(".png")
        files = list(diagnostics.directory.iterdir())
        assert len(files) == 1
        assert files[0].read_bytes() == b"\x89PNG fake"

    def test_unexpected_exception_becomes_action_failed(self, dispatcher, gateway, authenticated):
        gateway.booking_error = RuntimeError("selector vanished")
        outcome = dispatcher.book(FUTURE_SLOT)
        assert isinstance(outcome, Err)
        assert outcome.code == ErrorCode.ACTION_FAILED
        assert "selector vanished" in outcome.message

    def test_expired_credential(self, dispatcher, gateway, store, authenticated):
        gateway.booking_error = AuthExpiredError()
        outcome = dispatcher.book(FUTURE_SLOT)
        assert outcome.code == ErrorCode.AUTH_EXPIRED
        # The credential is kept; only a new authenticate replaces it.
        assert store.has() is True


# ── Cancel ───────────────────────────────────────────────────────────


class TestCancel:
    def test_blank_id_is_not_found_without_remote_call(self, dispatcher, gateway, authenticated):
        outcome = dispatcher.cancel("   ")
        assert outcome.code == ErrorCode.SESSION_NOT_FOUND
        assert gateway.calls == []

    def test_unknown_session(self, dispatcher, gateway, authenticated):
        gateway.cancel_error = SessionNotFoundError("nope")
        outcome = dispatcher.cancel("nope")
        assert outcome.code == ErrorCode.SESSION_NOT_FOUND
        assert "nope" in outcome.message

    def test_success_returns_confirmation_message(self, dispatcher, authenticated):
        outcome = dispatcher.cancel("abc123")
        assert isinstance(outcome, Ok)
        assert outcome.value == "Session abc123 has been cancelled."

    def test_requires_credential(self, dispatcher, gateway):
        assert dispatcher.cancel("abc123").code == ErrorCode.AUTH_REQUIRED
        assert gateway.calls == []


# ── List ─────────────────────────────────────────────────────────────


class TestListSessions:
    def test_end_before_start_is_rejected_locally(self, dispatcher, gateway, authenticated):
        outcome = dispatcher.list_sessions("2026-03-05T00:00:00Z", "2026-03-04T00:00:00Z")
        assert outcome.code == ErrorCode.INVALID_DATE_RANGE
        assert gateway.calls == []

    def test_unparsable_date_is_rejected(self, dispatcher, gateway, authenticated):
        outcome = dispatcher.list_sessions("next tuesday")
        assert outcome.code == ErrorCode.INVALID_DATE_RANGE
        assert gateway.calls == []

    def test_end_defaults_to_one_week(self, dispatcher, gateway, authenticated):
        dispatcher.list_sessions("2026-03-02T00:00:00Z")
        assert gateway.last_range.end - gateway.last_range.start == timedelta(days=7)

    def test_results_filtered_and_sorted(self, dispatcher, gateway, authenticated):
        gateway.history = [
            _record("late", "2026-03-04T10:00:00Z"),
            _record("outside", "2026-04-01T10:00:00Z"),
            _record("early", "2026-03-03T09:00:00Z"),
        ]
        outcome = dispatcher.list_sessions("2026-03-02T00:00:00Z", "2026-03-06T00:00:00Z")
        assert [s.id for s in outcome.value] == ["early", "late"]

    def test_requires_credential(self, dispatcher, gateway):
        outcome = dispatcher.list_sessions("2026-03-02T00:00:00Z")
        assert outcome.code == ErrorCode.AUTH_REQUIRED
        assert gateway.calls == []


# ── Serialisation ───────────────────────────────────────────────────


class TestMutualExclusion:
    def test_concurrent_bookings_never_overlap(self, dispatcher, gateway, authenticated):
        gateway.delay = 0.05
        threads = [
            threading.Thread(target=dispatcher.book, args=(FUTURE_SLOT,))
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert gateway.calls == ["perform_booking"] * 3
        assert gateway.max_active == 1

    def test_listing_waits_for_booking(self, dispatcher, gateway, authenticated):
        gateway.delay = 0.05
        threads = [
            threading.Thread(target=dispatcher.book, args=(FUTURE_SLOT,)),
            threading.Thread(target=dispatcher.list_sessions, args=("2026-03-02T00:00:00Z",)),
            threading.Thread(target=dispatcher.cancel, args=("abc",)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert gateway.max_active == 1

    def test_busy_lock_times_out(self, gateway, store, diagnostics, authenticated):
        dispatcher = ActionDispatcher(
            gateway, store, diagnostics,
            clock=lambda: NOW, lock_timeout=0.05, metrics_client=MetricsClient(),
        )
        assert dispatcher._lock.acquire(True)
        try:
            outcome = dispatcher.book(FUTURE_SLOT)
        finally:
            dispatcher._lock.release(True)
        assert outcome.code == ErrorCode.ACTION_FAILED
        assert "in progress" in outcome.message
        assert gateway.calls == []


class TestStatus:
    def test_status_without_credential(self, dispatcher):
        status = dispatcher.status()
        assert status == {
            "state": "absent",
            "authenticated": False,
            "credentialAgeSeconds": None,
            "fresh": False,
        }

    def test_status_with_fresh_credential(self, dispatcher, authenticated):
        status = dispatcher.status()
        assert status["state"] == "authenticated"
        assert status["authenticated"] is True
        assert status["fresh"] is True

    def test_corrupt_credential_reports_absent(self, dispatcher, store, authenticated):
        store.path.write_text("{not json", encoding="utf-8")

        assert dispatcher.state == CredentialState.ABSENT
        assert dispatcher.status() == {
            "state": "absent",
            "authenticated": False,
            "credentialAgeSeconds": None,
            "fresh": False,
        }


# ── Listings that never present the credential ───────────────────────


class TestApiKeyListing:
    def test_listing_does_not_revive_rejected_credential(self, dispatcher, gateway, authenticated):
        gateway.rest_listing = True
        gateway.booking_error = AuthExpiredError()

        assert dispatcher.book(FUTURE_SLOT).code == ErrorCode.AUTH_EXPIRED
        assert dispatcher.state == CredentialState.EXPIRED

        assert isinstance(dispatcher.list_sessions("2026-03-02T00:00:00Z"), Ok)
        assert dispatcher.state == CredentialState.EXPIRED

        outcome = dispatcher.authenticate()
        assert isinstance(outcome, Ok)
        assert gateway.calls == ["perform_booking", "query_history", "authenticate"]
        assert dispatcher.state == CredentialState.AUTHENTICATED

    def test_listing_does_not_record_validation(self, dispatcher, gateway, store, authenticated):
        gateway.rest_listing = True

        dispatcher.list_sessions("2026-03-02T00:00:00Z")

        assert store.get().last_validated_at is None

    def test_rejected_api_key_leaves_credential_alone(self, dispatcher, gateway, authenticated):
        gateway.rest_listing = True
        gateway.history_error = AuthExpiredError("Invalid API key.")

        outcome = dispatcher.list_sessions("2026-03-02T00:00:00Z")

        assert outcome.code == ErrorCode.AUTH_EXPIRED
        assert dispatcher.state == CredentialState.AUTHENTICATED

    def test_browser_listing_still_validates(self, dispatcher, gateway, store, authenticated):
        dispatcher.list_sessions("2026-03-02T00:00:00Z")

        assert store.get().last_validated_at is not None
