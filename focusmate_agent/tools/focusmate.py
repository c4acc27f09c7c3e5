"""LangChain tools for Focusmate session management.

Each tool forwards to the ``ActionDispatcher`` and serialises its ``Ok`` /
``Err`` result into the JSON envelope the calling agent parses.  Envelopes
use camelCase keys and leave out fields that are ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.tools import BaseTool, tool

from focusmate_agent.dispatcher import ActionDispatcher, Err
from focusmate_agent.tools.schemas import (
    AuthInput,
    BookSessionInput,
    CancelSessionInput,
    ListSessionsInput,
)

logger = logging.getLogger(__name__)


def _envelope(**fields: Any) -> str:
    return json.dumps({k: v for k, v in fields.items() if v is not None}, indent=2)


def build_tools(dispatcher: ActionDispatcher) -> list[BaseTool]:
    """Create the four Focusmate tools bound to *dispatcher*."""

    # ── Tool 1: Authenticate ─────────────────────────────────────────

    @tool("focusmate_auth", args_schema=AuthInput)
    def focusmate_auth(force: bool = False) -> str:
        """Open a browser window to log into Focusmate. Credentials are saved for future use.

        Call this first, and again whenever another tool reports AUTH_REQUIRED
        or AUTH_EXPIRED.
        """
        outcome = dispatcher.authenticate(force=force)
        if isinstance(outcome, Err):
            return _envelope(success=False, message=outcome.message, errorCode=outcome.code.value)
        return _envelope(success=True, message=outcome.value)

    # ── Tool 2: Book a session ───────────────────────────────────────

    @tool("book_session", args_schema=BookSessionInput)
    def book_session(start_time: str, duration: int | str = "50") -> str:
        """Book a Focusmate session at a specific time.

        Sessions start on 15-minute boundaries and last 25, 50 or 75 minutes.
        """
        outcome = dispatcher.book(start_time, duration)
        if isinstance(outcome, Err):
            return _envelope(success=False, error=outcome.message, errorCode=outcome.code.value)
        return _envelope(success=True, session=outcome.value.to_output())

    # ── Tool 3: Cancel a session ─────────────────────────────────────

    @tool("cancel_session", args_schema=CancelSessionInput)
    def cancel_session(session_id: str) -> str:
        """Cancel an existing Focusmate session by its ID."""
        outcome = dispatcher.cancel(session_id)
        if isinstance(outcome, Err):
            return _envelope(success=False, message=outcome.message, errorCode=outcome.code.value)
        return _envelope(success=True, message=outcome.value)

    # ── Tool 4: List sessions ────────────────────────────────────────

    @tool("list_sessions", args_schema=ListSessionsInput)
    def list_sessions(start_date: str, end_date: str | None = None) -> str:
        """List your Focusmate sessions starting inside a date range, earliest first."""
        outcome = dispatcher.list_sessions(start_date, end_date)
        if isinstance(outcome, Err):
            return _envelope(sessions=[], totalCount=0, error=outcome.message, errorCode=outcome.code.value)
        sessions = [s.to_output() for s in outcome.value]
        logger.debug("list_sessions returned %d session(s)", len(sessions))
        return _envelope(sessions=sessions, totalCount=len(sessions))

    return [focusmate_auth, book_session, cancel_session, list_sessions]
