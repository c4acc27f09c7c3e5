"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique session identifier for conversation continuity",
    )


class ChatResponse(BaseModel):
    reply: str = Field(..., description="The agent's response message")
    session_id: str = Field(..., description="The session ID for this conversation")


class CredentialStatus(BaseModel):
    state: str
    authenticated: bool
    credentialAgeSeconds: int | None = None
    fresh: bool


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "focusmate-agent"
    credential: CredentialStatus | None = None


class ToolInfo(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any] = Field(..., description="JSON schema of the tool arguments")


class ToolListResponse(BaseModel):
    tools: list[ToolInfo]


class ToolInvokeResponse(BaseModel):
    tool: str
    result: dict[str, Any] = Field(..., description="The tool's JSON envelope")
