# -----------------------------------------------------------------------------
# THE POOL MANAGER - ROCKET INVENTORY
# -----------------------------------------------------------------------------
# Responsibility: Keep a standing inventory of warm rockets and mediate all
# assignment and return traffic.
#
# - warmup(count): top the pool up to `count` rockets
# - assign_mission(mission): claim an idle rocket, or grow the pool by one
# - recycle(mission_id): hand the mission's rocket to the Refurbish Unit
#
# The Pool Manager is the only writer of the repository. Domain events are
# drained and logged after every operation.
# -----------------------------------------------------------------------------

import threading
import uuid

from rich.console import Console

from launchpad.core.ports import ContainerRuntime, RocketRepository
from launchpad.core.refurbish import RefurbishUnit
from launchpad.domain.models import Mission, Rocket, RocketStatus

console = Console()


def _new_rocket_id() -> str:
    return f"rocket-{uuid.uuid4().hex[:8]}"


class PoolManager:
    """
    Standing inventory of reusable rockets.

    Args:
        repository: Pool inventory (single source of truth).
        runtime: Container runtime used to create and remove rockets.
        refurbish_unit: Cleanup driver. Without one, recycled rockets are
            transitioned straight back to IDLE.
    """

    def __init__(
        self,
        repository: RocketRepository,
        runtime: ContainerRuntime,
        refurbish_unit: RefurbishUnit | None = None,
    ) -> None:
        self._repository = repository
        self._runtime = runtime
        self._refurbish_unit = refurbish_unit
        self._recycling: set[str] = set()
        self._recycling_lock = threading.Lock()

    # =========================================================================
    # INVENTORY
    # =========================================================================

    def warmup(self, count: int) -> None:
        """Ensure at least `count` rockets exist. Never shrinks the pool."""
        needed = count - len(self._repository.find_all())
        if needed <= 0:
            console.print(f"[dim][POOL] Warmup skipped, pool already holds >= {count}[/dim]")
            return

        console.print(f"[cyan][POOL] Warming up {needed} rocket(s)...[/cyan]")
        for _ in range(needed):
            rocket = self._build_rocket()
            self._repository.save(rocket)
        console.print(f"[green][POOL] Pool size: {count}[/green]")

    def _build_rocket(self) -> Rocket:
        container_id = self._runtime.create_base_container()
        rocket = Rocket(_new_rocket_id(), container_id)
        console.print(f"[cyan][POOL] Rocket built: {rocket.id} ({container_id[:12]})[/cyan]")
        return rocket

    # =========================================================================
    # ASSIGNMENT
    # =========================================================================

    def assign_mission(self, mission: Mission) -> Rocket:
        """
        Bind `mission` to a rocket and return it in PREPARING.

        An idle rocket is claimed atomically through the repository. When the
        pool has none, exactly one new container is created on demand.

        Raises:
            RocketStateError: If the claimed rocket was not IDLE.
        """
        rocket = self._repository.claim_idle(mission)
        if rocket is None:
            console.print(f"[yellow][POOL] No idle rocket for {mission.id}, building one[/yellow]")
            rocket = self._build_rocket()
            rocket.assign_mission(mission)

        self._repository.save(rocket)
        self._drain(rocket)
        console.print(f"[green][POOL] {mission.id} -> {rocket.id}[/green]")
        return rocket

    def update(self, rocket: Rocket) -> None:
        """Persist the latest state of a rocket handed out by this pool."""
        self._repository.save(rocket)
        self._drain(rocket)

    # =========================================================================
    # RETURN
    # =========================================================================

    def recycle(self, mission_id: str) -> None:
        """
        Return the rocket flying `mission_id` to the pool.

        Unknown or already recycled missions are a logged no-op.
        """
        with self._recycling_lock:
            if mission_id in self._recycling:
                console.print(f"[dim][POOL] {mission_id} already being recycled[/dim]")
                return
            self._recycling.add(mission_id)

        try:
            rocket = self._find_by_mission(mission_id)
            if rocket is None:
                console.print(f"[yellow][POOL] Recycle miss: no rocket flies {mission_id}[/yellow]")
                return

            console.print(f"[cyan][POOL] Recycling {rocket.id} ({mission_id})[/cyan]")
            if self._refurbish_unit is not None:
                self._refurbish_unit.refurbish(rocket)
            else:
                rocket.splash_down()
                rocket.finish_refurbishment()

            self._persist(rocket)
        finally:
            with self._recycling_lock:
                self._recycling.discard(mission_id)

    def decommission(self, rocket_id: str) -> bool:
        """Remove a rocket from service. Returns False if it is unknown."""
        rocket = self._repository.find_by_id(rocket_id)
        if rocket is None:
            return False

        rocket.decommission()
        self._persist(rocket)
        return True

    def _persist(self, rocket: Rocket) -> None:
        if rocket.status == RocketStatus.DECOMMISSIONED:
            try:
                self._runtime.remove_container(rocket.container_id)
            except Exception as e:
                console.print(f"[yellow][POOL] Container removal failed for {rocket.id}: {e}[/yellow]")
            self._repository.delete(rocket.id)
            console.print(f"[red][POOL] {rocket.id} decommissioned[/red]")
        else:
            self._repository.save(rocket)
        self._drain(rocket)

    def _drain(self, rocket: Rocket) -> None:
        for event in rocket.pull_domain_events():
            console.print(f"[dim][EVENT] {event.event_type} {event.rocket_id}[/dim]")

    # =========================================================================
    # READ-ONLY VIEWS
    # =========================================================================

    def _find_by_mission(self, mission_id: str) -> Rocket | None:
        """
        The rocket flying `mission_id`.

        A failed deploy leaves a PREPARING rocket bound to the same mission id
        as a later successful relaunch, so an ORBITING match always wins.
        """
        bound = [
            rocket
            for rocket in self._repository.find_all()
            if rocket.current_mission is not None and rocket.current_mission.id == mission_id
        ]
        for rocket in bound:
            if rocket.status == RocketStatus.ORBITING:
                return rocket
        return bound[0] if bound else None

    def find_rocket(self, rocket_id: str) -> Rocket | None:
        return self._repository.find_by_id(rocket_id)

    def snapshot(self) -> list[dict]:
        return [rocket.to_json() for rocket in self._repository.find_all()]

    def size(self) -> int:
        return len(self._repository.find_all())
