"""Centralized configuration for the Focusmate agent tools.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. ``config.json`` record under ``FOCUSMATE_HOME``  (Focusmate API key only)
  3. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/focusmate-agent/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 (lazy import keeps boto3 out of tests)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/focusmate-agent/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_env(name: str) -> str | None:
    """Return a config value from env-var or SSM, or ``None`` if unset."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _optional_env(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /focusmate-agent/{name} (AWS)."
    )


# ── Local state root ────────────────────────────────────────────────
FOCUSMATE_HOME: Path = Path(
    os.getenv("FOCUSMATE_HOME", str(Path.home() / ".focusmate-mcp"))
).expanduser()
CREDENTIAL_FILENAME = "credential.json"
CONFIG_FILENAME = "config.json"
SCREENSHOTS_DIRNAME = "screenshots"

# ── Focusmate ───────────────────────────────────────────────────────
FOCUSMATE_BASE_URL: str = os.getenv("FOCUSMATE_BASE_URL", "https://www.focusmate.com")
FOCUSMATE_APP_URL: str = os.getenv("FOCUSMATE_APP_URL", "https://app.focusmate.com")
FOCUSMATE_API_URL: str = os.getenv("FOCUSMATE_API_URL", "https://api.focusmate.com/v1")

AUTH_TIMEOUT_SECONDS: float = float(os.getenv("AUTH_TIMEOUT_SECONDS", "300"))
CREDENTIAL_MAX_AGE_HOURS: float = float(os.getenv("CREDENTIAL_MAX_AGE_HOURS", "12"))
SLOT_GRID_MINUTES: int = 15
SESSION_DURATIONS: tuple[int, ...] = (25, 50, 75)
DEFAULT_DURATION: int = 50
DEFAULT_LIST_WINDOW_DAYS: int = 7
BROWSER_HEADLESS: bool = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"

# ── LLM (only needed by the chat agent) ─────────────────────────────
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "127.0.0.1")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


# ── On-disk key-value record ────────────────────────────────────────

def ensure_home(root: Path | None = None) -> Path:
    """Create the private state root (owner-only) if missing and return it."""
    root = root or FOCUSMATE_HOME
    root.mkdir(parents=True, exist_ok=True, mode=0o700)
    return root


def load_local_config(root: Path | None = None) -> dict[str, Any]:
    """Read ``config.json``.  A missing or unreadable record is empty."""
    path = ensure_home(root) / CONFIG_FILENAME
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable config record at %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def save_local_config(values: dict[str, Any], root: Path | None = None) -> None:
    """Persist ``config.json`` atomically with owner-only permissions."""
    from focusmate_agent.services.credential_store import atomic_write_json  # noqa: PLC0415

    atomic_write_json(ensure_home(root) / CONFIG_FILENAME, values)


def get_api_key(root: Path | None = None) -> str | None:
    """Return the Focusmate public API key, if one is configured anywhere."""
    value = os.getenv("FOCUSMATE_API_KEY")
    if value and not value.startswith("your_"):
        return value
    stored = load_local_config(root).get("apiKey")
    if stored:
        return stored
    if _ON_AWS:
        return _get_ssm_parameter("FOCUSMATE_API_KEY")
    return None


def set_api_key(api_key: str, root: Path | None = None) -> None:
    """Store the Focusmate API key in the local config record."""
    values = load_local_config(root)
    values["apiKey"] = api_key
    save_local_config(values, root)
