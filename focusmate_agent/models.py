"""Domain models: booking requests, session records and the credential artifact."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class SessionStatus(StrEnum):
    PENDING = "pending"          # booked, waiting for a partner match
    MATCHED = "matched"          # partner assigned
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


def utcnow() -> datetime:
    return datetime.now(UTC)


def derive_status(
    now: datetime,
    start_time: datetime,
    end_time: datetime,
    *,
    completed: bool = False,
    has_partner: bool = False,
) -> SessionStatus:
    """Derive a status from timestamps when the remote did not report one."""
    if start_time > now:
        return SessionStatus.MATCHED if has_partner else SessionStatus.PENDING
    if end_time > now:
        return SessionStatus.IN_PROGRESS
    return SessionStatus.COMPLETED if completed else SessionStatus.NO_SHOW


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class BookingRequest(_CamelModel):
    """A validated request to book one session."""

    start_time: datetime
    duration: int = Field(..., description="Session length in minutes")


class DateRange(_CamelModel):
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


class SessionRecord(_CamelModel):
    """One Focusmate session as returned to the caller.

    ``end_time`` is always ``start_time + duration``; it is computed rather
    than stored so the two can never disagree.
    """

    id: str
    start_time: datetime
    duration: int
    status: SessionStatus
    partner_id: str | None = None
    partner_name: str | None = None
    title: str | None = None

    @computed_field(alias="endTime")  # type: ignore[prop-decorator]
    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)

    @classmethod
    def from_booking(cls, request: BookingRequest, session_id: str | None = None) -> SessionRecord:
        """Build the record for a freshly booked session."""
        if not session_id:
            session_id = f"temp-{int(utcnow().timestamp() * 1000)}"
        return cls(
            id=session_id,
            start_time=request.start_time,
            duration=request.duration,
            status=SessionStatus.PENDING,
        )

    def to_output(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CredentialArtifact(BaseModel):
    """Opaque proof of an authenticated session plus its bookkeeping.

    ``payload`` is whatever the gateway needs to resume the session (for the
    browser gateway, a Playwright ``storage_state`` dict).  The store never
    looks inside it.
    """

    model_config = ConfigDict(frozen=True)

    payload: dict[str, Any]
    created_at: datetime = Field(default_factory=utcnow)
    last_validated_at: datetime | None = None

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.created_at


class AuthResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact: CredentialArtifact
    message: str = "Successfully authenticated and saved credentials."


class Confirmation(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    message: str
