"""Failure snapshots for offline debugging.

The dispatcher calls ``capture`` once per failed gateway call.  The result is
only ever attached to an error message; nothing in the core reads it back,
and a capture that itself fails is logged and forgotten so the original
error always reaches the caller unchanged.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from pathlib import Path

from focusmate_agent.config import FOCUSMATE_HOME, SCREENSHOTS_DIRNAME
from focusmate_agent.models import utcnow

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class DiagnosticCapture:
    """Writes one artifact per failure under ``<root>/screenshots``.

    ``snapshot_source`` returns PNG bytes of the remote surface (usually the
    gateway's ``snapshot`` method).  When it has nothing, a small JSON note
    is written instead so every failure still leaves a trace.
    """

    def __init__(
        self,
        directory: Path | None = None,
        snapshot_source: Callable[[], bytes | None] | None = None,
    ) -> None:
        self._directory = directory or FOCUSMATE_HOME / SCREENSHOTS_DIRNAME
        self._snapshot_source = snapshot_source

    @property
    def directory(self) -> Path:
        return self._directory

    def _artifact_path(self, operation: str, suffix: str) -> Path:
        # Microsecond precision keeps names unique across rapid repeats.
        stamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        name = _UNSAFE.sub("-", operation) or "operation"
        path = self._directory / f"{name}-error-{stamp}{suffix}"
        counter = 1
        while path.exists():
            path = self._directory / f"{name}-error-{stamp}-{counter}{suffix}"
            counter += 1
        return path

    def capture(self, operation: str, detail: str | None = None) -> str | None:
        """Persist a diagnostic artifact and return its path, or ``None``."""
        try:
            self._directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            image = self._snapshot_source() if self._snapshot_source else None
            if image:
                path = self._artifact_path(operation, ".png")
                path.write_bytes(image)
            else:
                path = self._artifact_path(operation, ".json")
                path.write_text(
                    json.dumps(
                        {
                            "operation": operation,
                            "capturedAt": utcnow().isoformat(),
                            "detail": detail,
                        },
                        indent=2,
                    ),
                    encoding="utf-8",
                )
            logger.info("Saved diagnostic for %s to %s", operation, path)
            return str(path)
        except Exception:
            logger.exception("Diagnostic capture for %s failed", operation)
            return None
