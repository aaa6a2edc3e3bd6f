# -----------------------------------------------------------------------------
# DOCKER PROVIDER & ROCKET RUNTIME
# -----------------------------------------------------------------------------
# Responsibility: Everything LaunchPad does to a container goes through here.
#
# - DockerProvider: connection to the Docker daemon (DOCKER_HOST or local),
#   with auto-wake for a sleeping Docker Desktop
# - DockerAdapter: the ContainerRuntime port on top of the Docker SDK
#
# Rocket containers are warm shells: the base image runs `tail -f /dev/null`
# so code can be injected and started later with `exec`.
# -----------------------------------------------------------------------------

import io
import os
import platform
import subprocess
import tarfile
import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path

import docker
from docker import DockerClient
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from rich.console import Console
from rich.panel import Panel

from launchpad.core.ports import APP_DIR, APP_PORT, ContainerStats, ExecResult

console = Console()

# Configuration
BASE_IMAGE = os.getenv("LAUNCHPAD_BASE_IMAGE", "oven/bun:1.0-slim")
MEMORY_LIMIT = os.getenv("LAUNCHPAD_MEMORY_LIMIT", "512m")

# Every pool container carries this label so it can be swept in one call
ROCKET_LABEL_KEY = "launchpad.origin"
ROCKET_LABEL_VALUE = "pool"
ROCKET_LABEL = f"{ROCKET_LABEL_KEY}={ROCKET_LABEL_VALUE}"

# Host bun cache shared into every rocket to speed up installs
BUN_CACHE_HOST = Path.home() / ".bun" / "install" / "cache"
BUN_CACHE_CONTAINER = "/home/bun/.bun/install/cache"


class DockerProviderError(Exception):
    """Raised when the Docker daemon is unreachable and cannot be woken."""

    pass


class DockerAdapterError(Exception):
    """Raised when a container operation fails."""

    pass


class DockerProvider:
    """
    Docker daemon connection with auto-wake.

    Connects via DOCKER_HOST when set (e.g. a socket proxy), otherwise the
    local environment.
    """

    def __init__(self, auto_wake: bool = True) -> None:
        self._client: DockerClient | None = None
        self._auto_wake = auto_wake
        self._connect()

    def _open(self) -> DockerClient:
        docker_host = os.getenv("DOCKER_HOST")
        client = docker.DockerClient(base_url=docker_host) if docker_host else docker.from_env()
        client.ping()
        return client

    def _wake_docker(self) -> DockerClient | None:
        """Start Docker Desktop / the user daemon and wait up to 60s for it."""
        system = platform.system()
        console.print("[yellow][DOCKER] Engine sleeping. Attempting auto-wake...[/yellow]")

        if system == "Darwin":
            subprocess.run(["open", "-a", "Docker"], check=False)
        elif system == "Linux":
            subprocess.run(["systemctl", "--user", "start", "docker"], check=False)
        else:
            console.print(f"[yellow][DOCKER] Auto-wake unsupported on {system}[/yellow]")
            return None

        with console.status("[yellow]Waiting for Docker Engine (up to 60s)...[/yellow]", spinner="clock"):
            for _ in range(60):
                try:
                    client = self._open()
                    console.print("[green][DOCKER] Engine Online.[/green]")
                    return client
                except DockerException:
                    time.sleep(1)

        console.print("[red][DOCKER] Wake timeout - Docker did not respond[/red]")
        return None

    def _connect(self) -> None:
        try:
            self._client = self._open()
            console.print("[green][DOCKER] Connected to Docker Engine[/green]")
        except DockerException:
            if self._auto_wake:
                self._client = self._wake_docker()

            if self._client is None:
                console.print(
                    Panel(
                        "[bold red]CRITICAL: Docker Engine Unavailable[/bold red]\n\n"
                        "Rockets cannot be built without a Docker daemon.\n"
                        "Start Docker (or set DOCKER_HOST) and restart LaunchPad.",
                        title="SYSTEM HALT",
                        border_style="red",
                    )
                )
                raise DockerProviderError("Docker Engine is not available")

    def get_client(self) -> DockerClient:
        """Return the live client, reconnecting once if the daemon went away."""
        if self._client is None:
            raise DockerProviderError("Docker client not initialized")

        try:
            self._client.ping()
            return self._client
        except DockerException as e:
            console.print(f"[red][DOCKER] Connection lost: {e}[/red]")
            self._client = None
            self._connect()
            return self._client


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


def _format_bytes(value: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.1f}{unit}" if unit != "B" else f"{int(value)}B"
        value /= 1024
    return f"{value:.1f}GiB"


def _create_tar(source_path: str) -> bytes:
    """Pack a directory's contents (not the directory itself) into a tar."""
    tar_buffer = io.BytesIO()
    with tarfile.open(fileobj=tar_buffer, mode="w") as tar:
        tar.add(source_path, arcname=".")
    tar_buffer.seek(0)
    return tar_buffer.read()


class DockerAdapter:
    """
    ContainerRuntime on the Docker SDK.

    Args:
        client: An existing DockerClient. When omitted a DockerProvider
            connection is opened.
    """

    def __init__(self, client: DockerClient | None = None) -> None:
        self._provider: DockerProvider | None = None
        if client is None:
            self._provider = DockerProvider()
        self._client = client

    @property
    def client(self) -> DockerClient:
        if self._provider is not None:
            return self._provider.get_client()
        return self._client

    def _container(self, container_id: str) -> Container:
        try:
            return self.client.containers.get(container_id)
        except NotFound as e:
            raise DockerAdapterError(f"Container not found: {container_id[:12]}") from e

    def _ensure_image(self, image: str) -> None:
        try:
            self.client.images.get(image)
        except ImageNotFound:
            console.print(f"[yellow][DOCKER] Pulling: {image}...[/yellow]")
            self.client.images.pull(image)
            console.print(f"[green][DOCKER] Pulled: {image}[/green]")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def create_base_container(self) -> str:
        """Start a warm, idle container and return its full id."""
        self._ensure_image(BASE_IMAGE)
        name = f"rocket-{uuid.uuid4().hex[:7]}"
        BUN_CACHE_HOST.mkdir(parents=True, exist_ok=True)

        try:
            container = self.client.containers.run(
                BASE_IMAGE,
                command="tail -f /dev/null",
                name=name,
                detach=True,
                labels={ROCKET_LABEL_KEY: ROCKET_LABEL_VALUE},
                volumes={str(BUN_CACHE_HOST): {"bind": BUN_CACHE_CONTAINER, "mode": "rw"}},
                ports={f"{APP_PORT}/tcp": None},
                working_dir=APP_DIR,
                mem_limit=MEMORY_LIMIT,
            )
        except APIError as e:
            raise DockerAdapterError(f"Container creation failed: {e}") from e

        console.print(f"[green][DOCKER] Rocket container up: {name} ({container.short_id})[/green]")
        return container.id

    def remove_container(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).remove(force=True)
            console.print(f"[cyan][DOCKER] Removed {container_id[:12]}[/cyan]")
        except NotFound:
            console.print(f"[dim][DOCKER] {container_id[:12]} already gone[/dim]")

    def remove_containers_by_label(self, label: str = ROCKET_LABEL) -> int:
        """Force-remove every container carrying `label`. Returns the count."""
        containers = self.client.containers.list(all=True, filters={"label": label})
        for container in containers:
            container.remove(force=True)
        console.print(f"[cyan][DOCKER] Removed {len(containers)} container(s) labelled {label}[/cyan]")
        return len(containers)

    # =========================================================================
    # PAYLOAD
    # =========================================================================

    def get_exposed_port(self, container_id: str, internal_port: int = APP_PORT) -> int:
        container = self._container(container_id)
        container.reload()
        bindings = (container.attrs.get("NetworkSettings", {}).get("Ports") or {}).get(
            f"{internal_port}/tcp"
        )
        if not bindings:
            raise DockerAdapterError(
                f"No host port mapped for {internal_port}/tcp on {container_id[:12]}"
            )
        try:
            return int(bindings[0]["HostPort"])
        except (KeyError, ValueError, TypeError) as e:
            raise DockerAdapterError(f"Unreadable port binding: {bindings}") from e

    def copy_files(self, container_id: str, source_path: str, target_path: str) -> None:
        container = self._container(container_id)
        if not container.put_archive(target_path, _create_tar(source_path)):
            raise DockerAdapterError(f"Copy into {container_id[:12]}:{target_path} failed")

    def execute_command(self, container_id: str, argv: list[str]) -> ExecResult:
        container = self._container(container_id)
        exit_code, output = container.exec_run(argv, demux=True)
        stdout, stderr = output if output else (None, None)
        return ExecResult(
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=exit_code if exit_code is not None else -1,
        )

    # =========================================================================
    # TELEMETRY
    # =========================================================================

    def stream_logs(self, container_id: str, on_line: Callable[[str], None]) -> Callable[[], None]:
        """
        Follow the container's stdout/stderr from now on.

        Each complete line is passed to `on_line` from a background thread.
        Returns a function that closes the stream.
        """
        container = self._container(container_id)
        stream = container.logs(stream=True, follow=True, since=int(time.time()))

        def _pump() -> None:
            pending = ""
            try:
                for chunk in stream:
                    pending += _decode(chunk)
                    *lines, pending = pending.split("\n")
                    for line in lines:
                        if line.strip():
                            on_line(line.rstrip("\r"))
            except DockerException as e:
                console.print(f"[dim][DOCKER] Log stream for {container_id[:12]} ended: {e}[/dim]")
            if pending.strip():
                on_line(pending)

        threading.Thread(target=_pump, daemon=True, name=f"logs-{container_id[:12]}").start()
        return stream.close

    def get_stats(self, container_id: str) -> ContainerStats:
        """One-shot CPU and memory sample, computed the way `docker stats` does."""
        raw = self._container(container_id).stats(stream=False)

        cpu_stats = raw.get("cpu_stats", {})
        precpu_stats = raw.get("precpu_stats", {})
        cpu_delta = cpu_stats.get("cpu_usage", {}).get("total_usage", 0) - precpu_stats.get(
            "cpu_usage", {}
        ).get("total_usage", 0)
        system_delta = cpu_stats.get("system_cpu_usage", 0) - precpu_stats.get(
            "system_cpu_usage", 0
        )
        online_cpus = cpu_stats.get("online_cpus") or len(
            cpu_stats.get("cpu_usage", {}).get("percpu_usage") or []
        ) or 1
        cpu_percent = (cpu_delta / system_delta) * online_cpus * 100 if system_delta > 0 else 0.0

        memory_stats = raw.get("memory_stats", {})
        cache = memory_stats.get("stats", {}).get("inactive_file", 0)
        used = max(memory_stats.get("usage", 0) - cache, 0)
        limit = memory_stats.get("limit", 0)

        return ContainerStats(
            cpu=f"{max(cpu_percent, 0.0):.2f}%",
            memory=f"{_format_bytes(used)} / {_format_bytes(limit)}",
        )
