"""Argument schemas for the Focusmate tools.

These double as the LangChain ``args_schema`` (what the LLM sees) and as the
validator for ``POST /api/tools/{name}``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AuthInput(BaseModel):
    force: bool = Field(False, description="Force re-authentication even if valid credentials exist")


class BookSessionInput(BaseModel):
    start_time: str = Field(
        ...,
        description=(
            "Session start in ISO 8601 with an offset, e.g. 2026-03-02T14:30:00Z. "
            "Must be in the future and on a 15-minute boundary."
        ),
    )
    duration: int | str = Field("50", description='Session length in minutes: "25", "50" or "75"')


class CancelSessionInput(BaseModel):
    session_id: str = Field(..., description="ID of the session to cancel (from list_sessions)")


class ListSessionsInput(BaseModel):
    start_date: str = Field(..., description="Start of the window, ISO 8601 with an offset")
    end_date: str | None = Field(None, description="End of the window; defaults to 7 days after start_date")
