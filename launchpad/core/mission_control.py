# -----------------------------------------------------------------------------
# MISSION CONTROL - LAUNCH ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: The end-to-end "launch" use case and the operational
# lifetime of every mission in flight.
#
# Launch: Pool -> Injector -> Exposed Port -> Hostname -> Router
# Then, in the background for as long as the mission flies:
# - log stream forwarded line by line to the telemetry sink
# - stats poll every STATS_INTERVAL_SECONDS (stops once the rocket leaves duty)
# - one-shot expiry timer that recycles the rocket after MISSION_TTL_SECONDS
#
# Thread-based concurrency: each flight owns its own threads and a stop event.
# -----------------------------------------------------------------------------

import os
import re
import threading
from collections.abc import Callable

from rich.console import Console

from launchpad.core.injector import DeploymentError, PayloadInjector
from launchpad.core.pool import PoolManager
from launchpad.core.ports import APP_PORT, ContainerRuntime, Router, RouterError, TelemetrySink
from launchpad.domain.models import Mission, RocketStateError, RocketStatus

console = Console()

# Stats sampling interval
STATS_INTERVAL_SECONDS = 5

# Time budget before a mission is recycled automatically
MISSION_TTL_SECONDS = int(os.getenv("LAUNCHPAD_MISSION_TTL", "600"))

PREVIEW_DOMAIN = os.getenv("LAUNCHPAD_PREVIEW_DOMAIN", "dev.local")


def hostname_for(mission_id: str, domain: str = PREVIEW_DOMAIN) -> str:
    """Derive a DNS-safe preview hostname from a mission id."""
    label = re.sub(r"[^a-z0-9-]+", "-", mission_id.lower()).strip("-") or "mission"
    return f"{label[:63]}.{domain}"


class Flight:
    """
    Background telemetry for one launched mission.

    Holds only the rocket id, the mission id and a stop event. The stats
    loop re-reads the rocket from the pool on every tick and exits on its own
    once the rocket is gone, idle, decommissioned or flying another mission.
    """

    def __init__(
        self,
        rocket_id: str,
        container_id: str,
        mission_id: str,
        hostname: str,
        on_telemetry: TelemetrySink,
    ) -> None:
        self.rocket_id = rocket_id
        self.container_id = container_id
        self.mission_id = mission_id
        self.hostname = hostname
        self._on_telemetry = on_telemetry
        self._stop_event = threading.Event()
        self._stats_thread: threading.Thread | None = None
        self._stop_logs: Callable[[], None] | None = None
        self.expiry_timer: threading.Timer | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def emit(self, kind: str, payload: dict) -> None:
        self._on_telemetry(kind, {"rocketId": self.rocket_id, **payload})

    def forward_log(self, line: str) -> None:
        if not self._stop_event.is_set():
            self.emit("log", {"text": line})

    def attach_logs(self, stop_logs: Callable[[], None]) -> None:
        self._stop_logs = stop_logs

    def start_stats(self, pool: PoolManager, runtime: ContainerRuntime, interval: float) -> None:
        self._stats_thread = threading.Thread(
            target=self._stats_loop,
            args=(pool, runtime, interval),
            daemon=True,
            name=f"stats-{self.rocket_id}",
        )
        self._stats_thread.start()

    def _still_flying(self, pool: PoolManager) -> bool:
        rocket = pool.find_rocket(self.rocket_id)
        if rocket is None:
            return False
        if rocket.status in (RocketStatus.IDLE, RocketStatus.DECOMMISSIONED):
            return False
        return rocket.current_mission is not None and rocket.current_mission.id == self.mission_id

    def _stats_loop(self, pool: PoolManager, runtime: ContainerRuntime, interval: float) -> None:
        while not self._stop_event.wait(interval):
            if not self._still_flying(pool):
                console.print(f"[dim][TELEMETRY] {self.rocket_id} left duty, stats stopped[/dim]")
                self._stop_event.set()
                return
            try:
                stats = runtime.get_stats(self.container_id)
            except Exception as e:
                console.print(f"[yellow][TELEMETRY] {self.rocket_id} stats failed: {e}[/yellow]")
                continue
            self.emit("stats", {"cpu": stats.cpu, "memory": stats.memory})

    def stop(self) -> None:
        """Stop the stats loop and the log stream. Idempotent."""
        self._stop_event.set()
        if self.expiry_timer is not None:
            self.expiry_timer.cancel()
        if self._stop_logs is not None:
            stop_logs, self._stop_logs = self._stop_logs, None
            try:
                stop_logs()
            except Exception as e:
                console.print(f"[yellow][TELEMETRY] {self.rocket_id} log stream close: {e}[/yellow]")


class MissionControl:
    """
    Top-level use case: launch a mission and supervise it until recycle.

    Args:
        pool: Pool Manager handing out rockets.
        injector: Payload Injector deploying onto them.
        runtime: Container runtime (exposed port, logs, stats).
        router: Optional hostname router of the HTTP edge.
        ttl_seconds: Expiry budget per mission.
        stats_interval: Seconds between stats samples.
    """

    def __init__(
        self,
        pool: PoolManager,
        injector: PayloadInjector,
        runtime: ContainerRuntime,
        router: Router | None = None,
        ttl_seconds: float = MISSION_TTL_SECONDS,
        stats_interval: float = STATS_INTERVAL_SECONDS,
        domain: str = PREVIEW_DOMAIN,
    ) -> None:
        self._pool = pool
        self._injector = injector
        self._runtime = runtime
        self._router = router
        self._ttl_seconds = ttl_seconds
        self._stats_interval = stats_interval
        self._domain = domain
        self._flights: dict[str, Flight] = {}
        self._lock = threading.Lock()

        console.print("[green][MISSION CONTROL] Online[/green]")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def launch(self, mission: Mission, on_telemetry: TelemetrySink) -> str:
        """
        Launch `mission` and return the rocket id once it is reachable.

        Telemetry, stats and expiry keep running after this returns.

        Raises:
            DeploymentError: Checkout, copy or install failed. The rocket is
                left PREPARING for inspection.
            Exception: Exposure or telemetry setup failed after a successful
                deploy. The rocket has already been recycled.
        """
        with self._lock:
            relaunch = mission.id in self._flights
        if relaunch:
            console.print(f"[yellow][MISSION CONTROL] {mission.id} relaunch, recycling previous flight[/yellow]")
            self.recycle(mission.id)

        # Phase 1: Assignment
        rocket = self._pool.assign_mission(mission)

        # Phase 2: Deployment
        try:
            self._injector.deploy(rocket)
        except DeploymentError as e:
            console.print(f"[red][MISSION CONTROL] {mission.id} deploy failed: {e}[/red]")
            if e.output:
                console.print(f"[dim]{e.output.strip()[:500]}[/dim]")
            self._pool.update(rocket)
            raise
        self._pool.update(rocket)

        hostname = hostname_for(mission.id, self._domain)
        flight = Flight(rocket.id, rocket.container_id, mission.id, hostname, on_telemetry)

        try:
            # Phase 3: Exposure
            port = self._runtime.get_exposed_port(rocket.container_id, APP_PORT)
            rocket.assign_domain(hostname)
            if self._router is not None:
                self._router.register(hostname, f"http://localhost:{port}")
            self._pool.update(rocket)

            # Phase 4: Telemetry
            flight.attach_logs(self._runtime.stream_logs(rocket.container_id, flight.forward_log))
        except Exception as e:
            console.print(f"[red][MISSION CONTROL] {mission.id} exposure failed, recycling: {e}[/red]")
            flight.stop()
            self._reclaim(mission.id, hostname)
            raise

        console.print(f"[green][MISSION CONTROL] {mission.id} live at http://{hostname} (:{port})[/green]")
        with self._lock:
            self._flights[mission.id] = flight
        flight.start_stats(self._pool, self._runtime, self._stats_interval)

        # Phase 5: Expiry
        timer = threading.Timer(self._ttl_seconds, self._expire, args=(mission.id, flight))
        timer.daemon = True
        timer.name = f"expiry-{mission.id}"
        flight.expiry_timer = timer
        timer.start()

        return rocket.id

    def recycle(self, mission_id: str) -> None:
        """Recycle the mission's rocket and stop its telemetry. Idempotent."""
        with self._lock:
            flight = self._flights.pop(mission_id, None)

        if flight is not None:
            flight.stop()

        self._pool.recycle(mission_id)

        if flight is not None:
            self._release_route(flight.hostname)

    def active_missions(self) -> list[dict]:
        with self._lock:
            return [
                {"mission_id": f.mission_id, "rocket_id": f.rocket_id, "hostname": f.hostname}
                for f in self._flights.values()
            ]

    def shutdown(self) -> None:
        """Stop all background work without recycling any rocket."""
        with self._lock:
            flights = list(self._flights.values())
            self._flights.clear()
        for flight in flights:
            flight.stop()
        console.print(f"[yellow][MISSION CONTROL] Shutdown, {len(flights)} flight(s) detached[/yellow]")

    def _release_route(self, hostname: str) -> None:
        if self._router is None:
            return
        try:
            self._router.unregister(hostname)
        except RouterError as e:
            console.print(f"[yellow][MISSION CONTROL] Route {hostname} not released: {e}[/yellow]")

    def _reclaim(self, mission_id: str, hostname: str) -> None:
        """Recycle and unroute without propagating guard errors."""
        try:
            self._pool.recycle(mission_id)
        except RocketStateError as e:
            console.print(f"[red][MISSION CONTROL] {mission_id} recycle refused: {e}[/red]")
        self._release_route(hostname)

    # =========================================================================
    # EXPIRY
    # =========================================================================

    def _expire(self, mission_id: str, flight: Flight) -> None:
        with self._lock:
            current = self._flights.get(mission_id) is flight
            if current:
                del self._flights[mission_id]
        flight.stop()
        if not current:
            # Already recycled or relaunched; the new flight owns the rocket now
            return

        console.print(f"[yellow][MISSION CONTROL] {mission_id} expired, recycling[/yellow]")
        self._reclaim(mission_id, flight.hostname)
        flight.emit("log", {"text": f"[LaunchPad] Mission {mission_id} expired, rocket recycled"})
