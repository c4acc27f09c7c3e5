"""Abstract capability the dispatcher drives to touch the remote surface.

A concrete gateway (``BrowserGateway`` in production, stubs in tests) talks to
Focusmate however it likes.  The contract it must honour:

* Every call first checks that the remote shows an authenticated view and
  raises ``AuthExpiredError`` if it does not, before any other
  classification.
* Failures are raised as subclasses of ``FocusmateError``; anything else that
  escapes is treated by the dispatcher as ``ACTION_FAILED``.
* The gateway never persists the credential itself.  ``authenticate`` hands
  the new artifact back and the dispatcher stores it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from focusmate_agent.models import (
    AuthResult,
    BookingRequest,
    Confirmation,
    CredentialArtifact,
    DateRange,
    SessionRecord,
)


class RemoteActionGateway(ABC):

    @abstractmethod
    def authenticate(self, interactive: bool = True) -> AuthResult:
        """Block until the remote reports a logged-in state.

        Raises ``AuthTimeoutError`` when the bounded wait elapses.
        """

    @abstractmethod
    def perform_booking(
        self, request: BookingRequest, credential: CredentialArtifact,
    ) -> SessionRecord:
        """Book one session.

        Raises ``SlotUnavailableError``, ``SessionConflictError``,
        ``AuthExpiredError`` or ``ActionFailedError``.
        """

    @abstractmethod
    def perform_cancellation(
        self, session_id: str, credential: CredentialArtifact,
    ) -> Confirmation:
        """Cancel one session.

        Raises ``SessionNotFoundError``, ``AuthExpiredError`` or
        ``ActionFailedError``.
        """

    @abstractmethod
    def query_history(
        self, date_range: DateRange, credential: CredentialArtifact,
    ) -> list[SessionRecord]:
        """List sessions starting inside *date_range*.

        Raises ``AuthExpiredError`` or ``ActionFailedError``.
        """

    def presents_credential(self, operation: str) -> bool:
        """Whether *operation* shows the stored credential to the remote.

        Only calls that do can confirm or refute it; the dispatcher leaves
        the credential's validity untouched after any other call.
        """
        return True

    def snapshot(self) -> bytes | None:
        """Return a picture of the remote surface at this thread's last failure, if any."""
        return None
