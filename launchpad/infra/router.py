# -----------------------------------------------------------------------------
# ROUTING - HOSTNAME TABLE OF THE HTTP EDGE
# -----------------------------------------------------------------------------
# Responsibility: Map preview hostnames (pr-42.dev.local) to the host port of
# the rocket serving them.
#
# - RouteTable: in-process table, for an edge proxy living in this process
# - HttpRouter: pushes routes to an external edge proxy's admin API
# -----------------------------------------------------------------------------

import os
import threading

import requests
from rich.console import Console

from launchpad.core.ports import RouterError

console = Console()

ROUTER_URL = os.getenv("LAUNCHPAD_ROUTER_URL")
ROUTER_TIMEOUT_SECONDS = 10


class RouteTable:
    """Thread-safe hostname -> upstream URL table."""

    def __init__(self) -> None:
        self._routes: dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, hostname: str, target_url: str) -> None:
        with self._lock:
            self._routes[hostname] = target_url
        console.print(f"[cyan][ROUTER] {hostname} -> {target_url}[/cyan]")

    def unregister(self, hostname: str) -> None:
        with self._lock:
            removed = self._routes.pop(hostname, None)
        if removed:
            console.print(f"[cyan][ROUTER] {hostname} removed[/cyan]")

    def resolve(self, hostname: str) -> str | None:
        with self._lock:
            return self._routes.get(hostname)

    def routes(self) -> dict[str, str]:
        with self._lock:
            return dict(self._routes)


class HttpRouter:
    """
    Route registration against an edge proxy admin API.

    POST   {base_url}/routes             {"hostname": ..., "target": ...}
    DELETE {base_url}/routes/{hostname}
    """

    def __init__(self, base_url: str, token: str | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def register(self, hostname: str, target_url: str) -> None:
        try:
            response = requests.post(
                f"{self._base_url}/routes",
                headers=self._headers,
                json={"hostname": hostname, "target": target_url},
                timeout=ROUTER_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise RouterError(f"Edge proxy unreachable: {e}")

        if response.status_code not in (200, 201, 204):
            raise RouterError(f"Route registration failed {response.status_code}: {response.text}")
        console.print(f"[cyan][ROUTER] {hostname} -> {target_url} (edge)[/cyan]")

    def unregister(self, hostname: str) -> None:
        try:
            response = requests.delete(
                f"{self._base_url}/routes/{hostname}",
                headers=self._headers,
                timeout=ROUTER_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise RouterError(f"Edge proxy unreachable: {e}")

        # 404 means the route is already gone
        if response.status_code not in (200, 204, 404):
            raise RouterError(f"Route removal failed {response.status_code}: {response.text}")
        console.print(f"[cyan][ROUTER] {hostname} removed (edge)[/cyan]")
