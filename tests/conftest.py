"""Shared test configuration for credentials-binding tests.

Configures test environment including:
- Test secrets for provider-backed bindings
- An in-memory master key (no key file is written to the home directory)
- Common fixtures for step contexts and output sinks
"""

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from test_secrets import setup_test_secrets as _setup_secrets
from test_secrets import teardown_test_secrets as _teardown_secrets
from test_utils import RecordingSink

from credentials_binding.engine import Launcher, RunInfo, StepContext
from credentials_binding.engine.secrets import SecretCipher, set_default_cipher


@pytest.fixture(scope="session", autouse=True)
def setup_test_secrets() -> Iterator[None]:
    """Configure test secrets (CREDENTIALS_SECRET_*) for all tests."""
    _setup_secrets()
    yield
    _teardown_secrets()


@pytest.fixture(autouse=True)
def master_key() -> Iterator[SecretCipher]:
    """Use a fresh random master key per test."""
    cipher = SecretCipher(os.urandom(32))
    set_default_cipher(cipher)
    yield cipher
    set_default_cipher(None)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def calls() -> list[str]:
    """Shared log of bind/unbind calls in order."""
    return []


@pytest.fixture
def step_context(sink: RecordingSink) -> StepContext:
    """Context with run and listener only (no workspace or launcher)."""
    return StepContext(run=RunInfo(run_id="run-1"), listener=sink)


@pytest.fixture
def workspace_context(sink: RecordingSink, tmp_path: Path) -> StepContext:
    """Context with a workspace and a Unix launcher."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return StepContext(
        run=RunInfo(run_id="run-ws"),
        listener=sink,
        workspace=workspace,
        launcher=Launcher(is_unix=True),
    )
