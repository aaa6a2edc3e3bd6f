# -----------------------------------------------------------------------------
# THE REFURBISH UNIT - CLEANUP & RETURN TO POOL
# -----------------------------------------------------------------------------
# Responsibility: Bring an ORBITING rocket back to IDLE so the next mission
# can reuse its warm container.
#
# One cleanup command runs inside the container:
# - empty the application directory
# - kill leftover app processes (best effort)
# - clear /tmp
#
# A rocket whose cleanup did not verifiably succeed is DECOMMISSIONED,
# never returned to the pool.
# -----------------------------------------------------------------------------

from rich.console import Console

from launchpad.core.ports import APP_DIR, ContainerRuntime
from launchpad.domain.models import Rocket

console = Console()

CLEANUP_SCRIPT = (
    f"rm -rf {APP_DIR}/* {APP_DIR}/.[!.]* {APP_DIR}/..?* ; "
    "pkill -f bun || true ; "
    "rm -rf /tmp/*"
)


class RefurbishUnit:
    """Drives one rocket through teardown and back to the pool."""

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime

    def refurbish(self, rocket: Rocket) -> None:
        """
        ORBITING -> REFURBISHING -> IDLE, or -> DECOMMISSIONED on failure.

        Raises:
            RocketStateError: If the rocket is not ORBITING.
        """
        rocket.splash_down()
        console.print(f"[cyan][REFURBISH] {rocket.id}: cleaning container...[/cyan]")

        try:
            result = self._runtime.execute_command(
                rocket.container_id, ["sh", "-c", CLEANUP_SCRIPT]
            )
        except Exception as e:
            console.print(f"[red][REFURBISH] {rocket.id}: cleanup raised: {e}[/red]")
            rocket.decommission()
            return

        if result.exit_code != 0:
            console.print(
                f"[red][REFURBISH] {rocket.id}: cleanup exited {result.exit_code}, "
                f"decommissioning[/red]"
            )
            if result.stderr:
                console.print(f"[dim]{result.stderr.strip()[:200]}[/dim]")
            rocket.decommission()
            return

        rocket.finish_refurbishment()
        console.print(f"[green][REFURBISH] {rocket.id}: back in the pool[/green]")
