"""Pytest configuration and fixtures for imagetest unit tests."""

import os
import threading
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest

from imagetest.constants import CONFIG_ENV_VAR, DEBUG_ENV_VAR, LABELS_ENV_VAR
from imagetest.core.provider import ProviderStore
from imagetest.harnesses.k3s.auth import StaticAuth
from imagetest.harnesses.k3s.model import HarnessK3sModel


class FakeKeychain:
    """Keychain returning fixed credentials per registry."""

    def __init__(self, entries: dict[str, StaticAuth] | None = None) -> None:
        self.entries = entries or {}
        self.lookups: list[str] = []

    def resolve(self, registry: str) -> StaticAuth | None:
        self.lookups.append(registry)
        return self.entries.get(registry)


class FakeHandle:
    """Harness handle recording calls instead of talking to Docker.

    Parameters
    ----------
    setup_seconds : float
        Time ``setup`` takes; it waits on the deadline so cancellation is
        observed
    fail_with : Exception | None
        Exception raised from ``setup``
    """

    def __init__(self, setup_seconds: float = 0.0, fail_with: Exception | None = None) -> None:
        self.setup_seconds = setup_seconds
        self.fail_with = fail_with
        self.setup_calls = 0
        self.commands: list[str] = []
        self.outputs: dict[str, str] = {}
        self.setup_done = threading.Event()

    def setup(self, deadline: Any) -> None:
        self.setup_calls += 1
        if self.setup_seconds:
            deadline.wait(self.setup_seconds)
        if self.fail_with is not None:
            raise self.fail_with
        self.setup_done.set()

    def run(self, command: str, deadline: Any = None) -> str:
        self.commands.append(command)
        return self.outputs.get(command, "")


@pytest.fixture(autouse=True)
def clean_imagetest_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Ensure imagetest environment variables do not leak into tests.

    Yields
    ------
    None
        Control back to test after clearing the environment
    """
    for name in (CONFIG_ENV_VAR, LABELS_ENV_VAR, DEBUG_ENV_VAR):
        monkeypatch.delenv(name, raising=False)

    yield


@pytest.fixture
def keychain() -> FakeKeychain:
    return FakeKeychain({"cgr.dev": StaticAuth(username="robot", password="s3cret")})


@pytest.fixture
def docker_client() -> MagicMock:
    """Mock Docker client whose containers report success for every exec.

    Returns
    -------
    MagicMock
        Client with ``networks``, ``containers`` and ``images`` collections
    """
    client = MagicMock(name="docker_client")
    container = MagicMock(name="container")
    container.id = "container-id"
    container.exec_run.return_value = MagicMock(
        exit_code=0,
        output=b"apiVersion: v1\nserver: https://127.0.0.1:6443\n",
    )
    client.containers.create.return_value = container
    client.networks.create.return_value = MagicMock(id="network-id")
    return client


@pytest.fixture
def store(keychain: FakeKeychain, docker_client: MagicMock, tmp_path: Any) -> ProviderStore:
    return ProviderStore(
        keychain=keychain,
        docker_client_factory=lambda: docker_client,
        cwd=str(tmp_path),
    )


@pytest.fixture
def harness_model() -> HarnessK3sModel:
    return HarnessK3sModel(name="k3s", seed="suite-a")


@pytest.fixture(autouse=True)
def restore_cwd() -> Generator[None, None, None]:
    """Restore the working directory after tests that change it."""
    cwd = os.getcwd()
    yield
    os.chdir(cwd)


@pytest.fixture
def make_handle() -> type[FakeHandle]:
    return FakeHandle


@pytest.fixture
def make_keychain() -> type[FakeKeychain]:
    return FakeKeychain
