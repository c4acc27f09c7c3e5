"""Shared test fixtures for the Focusmate agent test suite."""

from __future__ import annotations

import os
import tempfile
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any test module imports ``focusmate_agent``, so
    config.py picks up a throwaway home directory instead of the real
    ``~/.focusmate-mcp``.
    """
    os.environ.setdefault("FOCUSMATE_HOME", tempfile.mkdtemp(prefix="focusmate-test-"))
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["METRICS_ENABLED"] = "false"
    os.environ.pop("FOCUSMATE_API_KEY", None)


@pytest.fixture
def gateway():
    from stubs import StubGateway

    return StubGateway()


@pytest.fixture
def store(tmp_path):
    from focusmate_agent.services.credential_store import CredentialStore

    return CredentialStore(tmp_path / "home")


@pytest.fixture
def authenticated(store):
    """Put a credential in the store."""
    from focusmate_agent.models import CredentialArtifact

    artifact = CredentialArtifact(payload={"cookies": [{"name": "session", "value": "abc"}]})
    store.put(artifact)
    return artifact


@pytest.fixture
def diagnostics(tmp_path, gateway):
    from focusmate_agent.services.diagnostics import DiagnosticCapture

    return DiagnosticCapture(tmp_path / "screenshots", snapshot_source=gateway.snapshot)


@pytest.fixture
def dispatcher(gateway, store, diagnostics):
    from focusmate_agent.dispatcher import ActionDispatcher
    from focusmate_agent.services.metrics import MetricsClient
    from stubs import NOW

    return ActionDispatcher(
        gateway,
        store,
        diagnostics,
        clock=lambda: NOW,
        metrics_client=MetricsClient(),
    )


@pytest.fixture
def mock_focusmate_response():
    """Factory fixture for creating mock Focusmate API responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
