"""Focusmate Agent: LLM-callable tools for booking Focusmate sessions.

Architecture Overview
=====================

Four tools (``focusmate_auth``, ``book_session``, ``cancel_session``,
``list_sessions``) sit on top of one **ActionDispatcher**, which is the only
place that knows the order of work for an action:

1. validate input locally (bad input never reaches Focusmate)
2. take the per-credential lock (FIFO; exclusive for mutations)
3. load the stored credential
4. drive the **RemoteActionGateway**
5. classify any failure into a stable error code and capture a diagnostic

Key Design Decisions
--------------------
- **Browser automation**: Focusmate has no public booking API, so the
  production gateway drives Chromium through Playwright.  Listings use the
  read-only REST API when an API key is configured.
- **Credential**: the Playwright ``storage_state`` is stored as one JSON file
  under ``~/.focusmate-mcp``, written atomically with owner-only permissions.
- **Results, not exceptions**: the dispatcher returns ``Ok`` / ``Err``; the
  tools turn those into JSON envelopes with an ``errorCode`` the calling
  agent can branch on.
- **Dual Interface**: FastAPI server + argparse CLI, plus an optional
  LangGraph chat agent that uses the same tools.

Package Structure
-----------------
- ``focusmate_agent/dispatcher.py``: ActionDispatcher and its factory
- ``focusmate_agent/validation.py``: start time, duration and date range checks
- ``focusmate_agent/locking.py``: per-credential reader/writer lock
- ``focusmate_agent/models.py`` / ``errors.py``: domain types and error taxonomy
- ``focusmate_agent/config.py``: environment, SSM and ``config.json`` settings
- ``focusmate_agent/services/``: credential store, gateways, REST client,
  diagnostics, cache and metrics
- ``focusmate_agent/tools/``: LangChain tools and their argument schemas
- ``focusmate_agent/agent.py`` / ``prompts.py``: LangGraph chat agent
- ``focusmate_agent/server.py`` / ``api/``: FastAPI application
- ``focusmate_agent/main.py``: CLI
"""
