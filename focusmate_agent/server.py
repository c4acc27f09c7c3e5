"""FastAPI server exposing the Focusmate tools and chat agent.

Run with:
    uvicorn focusmate_agent.server:app --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from focusmate_agent.api.routes import router
from focusmate_agent.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, require_env
from focusmate_agent.dispatcher import build_dispatcher
from focusmate_agent.services.metrics import metrics
from focusmate_agent.tools.focusmate import build_tools

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the dispatcher and tools once; compile the agent if an LLM key exists.

    The tool endpoints work without an Anthropic key; only ``/api/chat``
    needs one and answers 503 when it is missing.
    """
    dispatcher = build_dispatcher()
    application.state.dispatcher = dispatcher
    application.state.tools = {t.name: t for t in build_tools(dispatcher)}

    try:
        require_env("ANTHROPIC_API_KEY")
    except OSError as exc:
        logger.warning("Chat agent disabled: %s", exc)
        application.state.agent = None
    else:
        from focusmate_agent.agent import create_focusmate_agent  # noqa: PLC0415

        logger.info("Compiling LangGraph agent…")
        application.state.agent = create_focusmate_agent(dispatcher)
        logger.info("Agent ready.")
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Focusmate Agent",
    description="Book, cancel and list Focusmate sessions through tools or chat.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "Focusmate Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
        "tools": "/api/tools",
    }


def run() -> None:
    logger.info("Starting Focusmate Agent API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("focusmate_agent.server:app", host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    run()
