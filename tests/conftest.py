"""
Pytest configuration and fixtures for LaunchPad tests.
"""

import os
import sys
import threading
import time
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5432")
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test_db")
os.environ.setdefault("LAUNCHPAD_PREVIEW_DOMAIN", "dev.local")

from launchpad.core.db import InMemoryRocketRepository
from launchpad.core.ports import ContainerStats, ExecResult
from launchpad.domain.models import Mission


class FakeRuntime:
    """
    In-memory ContainerRuntime.

    `fail_when(predicate, result)` makes execute_command return `result` for
    every argv matching `predicate`; a result that is an Exception is raised.
    """

    def __init__(self) -> None:
        self.created: list[str] = []
        self.removed: list[str] = []
        self.copies: list[tuple[str, str, str]] = []
        self.commands: list[tuple[str, list[str]]] = []
        self.log_callbacks: dict[str, object] = {}
        self.log_streams_closed: list[str] = []
        self.stats_calls = 0
        self.port = 32768
        self.app_started = threading.Event()
        self._rules: list[tuple[object, object]] = []
        self._lock = threading.Lock()

    def fail_when(self, predicate, result) -> None:
        self._rules.append((predicate, result))

    def create_base_container(self) -> str:
        container_id = f"{len(self.created) + 1:064x}"
        self.created.append(container_id)
        return container_id

    def get_exposed_port(self, container_id: str, internal_port: int) -> int:
        return self.port

    def copy_files(self, container_id: str, source_path: str, target_path: str) -> None:
        self.copies.append((container_id, source_path, target_path))

    def execute_command(self, container_id: str, argv: list[str]) -> ExecResult:
        with self._lock:
            self.commands.append((container_id, list(argv)))
        if "bun run start" in " ".join(argv):
            self.app_started.set()
        for predicate, result in self._rules:
            if predicate(argv):
                if isinstance(result, Exception):
                    raise result
                return result
        return ExecResult(stdout="", stderr="", exit_code=0)

    def remove_container(self, container_id: str) -> None:
        self.removed.append(container_id)

    def stream_logs(self, container_id: str, on_line):
        self.log_callbacks[container_id] = on_line
        return lambda: self.log_streams_closed.append(container_id)

    def get_stats(self, container_id: str) -> ContainerStats:
        self.stats_calls += 1
        return ContainerStats(cpu="12.00%", memory="10.0MiB / 512.0MiB")

    def argvs(self) -> list[list[str]]:
        with self._lock:
            return [argv for _, argv in self.commands]


class FakeGit:
    """SourceControl that records clones and returns a fixed staging path."""

    def __init__(self, path: str = "/tmp/launchpad-fake-repo") -> None:
        self.path = path
        self.cloned: list[tuple[str, str]] = []
        self.error: Exception | None = None

    def clone(self, repo_url: str, branch: str) -> str:
        if self.error is not None:
            raise self.error
        self.cloned.append((repo_url, branch))
        return self.path


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it holds or `timeout` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def git():
    return FakeGit()


@pytest.fixture
def repository():
    return InMemoryRocketRepository()


@pytest.fixture
def mission():
    return Mission(
        id="pr-1",
        repo_url="https://github.com/acme/shop.git",
        branch="feat/cart",
        commit_sha="abc123",
    )


@pytest.fixture
def make_mission():
    def _make(mission_id: str) -> Mission:
        return Mission(
            id=mission_id,
            repo_url="https://github.com/acme/shop.git",
            branch="main",
            commit_sha="def456",
        )

    return _make
