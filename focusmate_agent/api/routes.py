"""FastAPI route definitions for the Focusmate agent API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from focusmate_agent.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ToolInfo,
    ToolInvokeResponse,
    ToolListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request):
    """Retrieve the compiled LangGraph agent from app state (set in the lifespan)."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The chat agent is not available. Check that ANTHROPIC_API_KEY is configured.",
        )
    return agent


def _get_tools(request: Request) -> dict[str, BaseTool]:
    tools = getattr(request.app.state, "tools", None)
    if not tools:
        raise HTTPException(status_code=503, detail="The tools are still starting up.")
    return tools


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    """Health check, including where the stored credential stands."""
    dispatcher = getattr(http_request.app.state, "dispatcher", None)
    if dispatcher is None:
        return HealthResponse()
    status = await asyncio.to_thread(dispatcher.status)
    return HealthResponse(credential=status)


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(http_request: Request):
    tools = _get_tools(http_request)
    return ToolListResponse(
        tools=[
            ToolInfo(name=t.name, description=t.description, parameters=t.args_schema.model_json_schema())
            for t in tools.values()
        ]
    )


@router.post("/tools/{name}", response_model=ToolInvokeResponse)
async def invoke_tool(name: str, http_request: Request, args: dict[str, Any] = Body(default_factory=dict)):
    """Run one tool directly, bypassing the LLM.

    Tool failures are not HTTP errors: they come back as a 200 with
    ``success: false`` and an ``errorCode`` in the envelope.
    """
    tools = _get_tools(http_request)
    tool = tools.get(name)
    if tool is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")

    try:
        parsed = tool.args_schema.model_validate(args)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc

    request_id = getattr(http_request.state, "request_id", "?")
    logger.info("[%s] Invoking tool %s", request_id, name)
    # Tools block on the browser; keep the event loop free.
    result = await asyncio.to_thread(tool.invoke, parsed.model_dump(exclude_none=True))
    return ToolInvokeResponse(tool=name, result=json.loads(result))


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the Focusmate agent and get a response.

    ``session_id`` keys the conversation memory across requests.
    """
    agent = _get_agent(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(
            agent.invoke,
            {"messages": [HumanMessage(content=request.message)]},
            config={"configurable": {"thread_id": request.session_id}},
        )

        messages = result.get("messages", [])
        if not messages:
            logger.error("[%s] Agent returned no messages", request_id)
            raise HTTPException(status_code=500, detail="Agent produced no response.")

        last_message = messages[-1]
        reply = (
            last_message.content
            if hasattr(last_message, "content")
            else str(last_message)
        )

        return ChatResponse(reply=reply, session_id=request.session_id)

    except HTTPException:
        raise
    except Exception as e:
        # Full traceback stays in the server log; the client gets a generic message.
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e
