"""Durable, owner-only persistence for the single credential artifact.

Design decisions
────────────────
• **One file per account** (``credential.json``).  A new artifact replaces the
  old one wholesale; nothing is ever edited in place.
• **Write-temp-then-rename**: the JSON is written to a ``mkstemp`` file in the
  same directory, fsynced, chmodded to ``0o600`` and moved over the target
  with ``os.replace``.  Readers see either the old file or the new one.
• **threading.Lock** around read-modify-write sequences (``mark_validated``)
  so two threads in one process cannot interleave them.
• No network access here; pure local persistence.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from focusmate_agent.config import CREDENTIAL_FILENAME, FOCUSMATE_HOME, ensure_home
from focusmate_agent.models import CredentialArtifact, utcnow

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, data: Any) -> None:
    """Write *data* as JSON to *path* without ever exposing a partial file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class CredentialStore:
    """File-backed store for one :class:`CredentialArtifact`."""

    def __init__(self, root: Path | None = None) -> None:
        self._root = root or FOCUSMATE_HOME
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._root / CREDENTIAL_FILENAME

    # ── Core operations ──────────────────────────────────────────────

    def has(self) -> bool:
        """Return ``True`` if an artifact is currently stored."""
        return self.path.is_file()

    def get(self) -> CredentialArtifact | None:
        """Load the stored artifact, or ``None`` if absent or unreadable."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return CredentialArtifact.model_validate_json(raw)
        except ValidationError:
            logger.warning("Credential file %s is corrupt; treating it as absent", self.path)
            return None

    def put(self, artifact: CredentialArtifact) -> None:
        """Atomically persist *artifact*, replacing any prior one."""
        ensure_home(self._root)
        with self._lock:
            atomic_write_json(self.path, artifact.model_dump(mode="json"))
        logger.info("Stored new credential artifact at %s", self.path)

    def clear(self) -> None:
        """Remove the artifact.  Safe to call when nothing is stored."""
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
        logger.info("Cleared credential artifact")

    def mark_validated(self) -> None:
        """Record that the remote just accepted the stored credential."""
        with self._lock:
            artifact = self.get()
            if artifact is None:
                return
            refreshed = artifact.model_copy(update={"last_validated_at": utcnow()})
            atomic_write_json(self.path, refreshed.model_dump(mode="json"))

    # ── Freshness ────────────────────────────────────────────────────

    def age(self) -> timedelta | None:
        """Time since the stored artifact was created, or ``None`` if absent."""
        artifact = self.get()
        if artifact is None:
            return None
        return artifact.age()

    def is_fresh(self, max_age: timedelta) -> bool:
        age = self.age()
        if age is None:
            return False
        return age < max_age
