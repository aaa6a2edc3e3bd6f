# -----------------------------------------------------------------------------
# PORTS - COLLABORATOR CONTRACTS
# -----------------------------------------------------------------------------
# The engine talks to the outside world only through these capability
# interfaces. Concrete adapters (Docker SDK, git CLI, HTTP edge, PostgreSQL)
# are injected through constructors, so tests swap in plain fakes.
# -----------------------------------------------------------------------------

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from launchpad.domain.models import Mission, Rocket

# Where every rocket keeps and serves its application
APP_DIR = "/app"
APP_PORT = 3000


@dataclass
class ExecResult:
    """Outcome of a command executed inside a container."""

    stdout: str
    stderr: str
    exit_code: int


@dataclass
class ContainerStats:
    """One resource-usage sample, formatted like `docker stats`."""

    cpu: str
    memory: str


class ContainerRuntime(Protocol):
    """Creates, drives and observes the containers backing rockets."""

    def create_base_container(self) -> str: ...

    def get_exposed_port(self, container_id: str, internal_port: int) -> int: ...

    def copy_files(self, container_id: str, source_path: str, target_path: str) -> None: ...

    def execute_command(self, container_id: str, argv: list[str]) -> ExecResult: ...

    def remove_container(self, container_id: str) -> None: ...

    def stream_logs(
        self, container_id: str, on_line: Callable[[str], None]
    ) -> Callable[[], None]: ...

    def get_stats(self, container_id: str) -> ContainerStats: ...


class SourceControl(Protocol):
    """Checks out a branch into a local staging directory."""

    def clone(self, repo_url: str, branch: str) -> str: ...


class RouterError(Exception):
    """Raised when the HTTP edge rejects or cannot receive a route change."""

    pass


class Router(Protocol):
    """Owns the hostname -> upstream table of the HTTP edge."""

    def register(self, hostname: str, target_url: str) -> None: ...

    def unregister(self, hostname: str) -> None: ...


class RocketRepository(Protocol):
    """
    Pool inventory.

    claim_idle must be atomic: find an IDLE rocket, assign the mission and
    persist it without another caller being able to claim the same rocket.
    """

    def save(self, rocket: Rocket) -> None: ...

    def find_by_id(self, rocket_id: str) -> Rocket | None: ...

    def find_idle(self) -> Rocket | None: ...

    def find_all(self) -> list[Rocket]: ...

    def delete(self, rocket_id: str) -> None: ...

    def claim_idle(self, mission: Mission) -> Rocket | None: ...


TelemetrySink = Callable[[str, dict], None]
