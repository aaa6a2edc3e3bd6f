# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# THE PAYLOAD INJECTOR - CODE DELIVERY & IGNITION
# -----------------------------------------------------------------------------
# Responsibility: Take a PREPARING rocket from an empty warm container to a
# running application.
#
# Sequence:
# 1. Clone the mission branch into a local staging directory
# 2. Copy the tree into the container's /app
# 3. Write bunfig.toml (primary registry) and `bun install --ignore-scripts`
# 4. Retry the install once against a mirror (only without a registry override)
# 5. Start the app fire-and-forget, then ignite the rocket
#
# The rocket is ignited once the start is issued, not once the app is
# healthy. Readiness is observed through telemetry.
# -----------------------------------------------------------------------------

import os
import shlex
import shutil
import threading

from rich.console import Console

from launchpad.core.ports import APP_DIR, ContainerRuntime, ExecResult, SourceControl
from launchpad.domain.models import Rocket, RocketStateError

console = Console()

DEFAULT_REGISTRY = "https://registry.npmjs.org/"
MIRROR_REGISTRY = "https://registry.npmmirror.com/"

# Explicit override disables the mirror fallback
REGISTRY_OVERRIDE = os.getenv("LAUNCHPAD_NPM_REGISTRY") or None

INSTALL_COMMAND = ["bun", "install", "--ignore-scripts", "--no-save"]

# Output is redirected to PID 1 so `docker logs` (and therefore telemetry) sees it
START_COMMAND = ["sh", "-c", f"cd {APP_DIR} && bun run start > /proc/1/fd/1 2> /proc/1/fd/2"]


class DeploymentError(Exception):
    """Raised when code delivery or dependency installation fails."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class PayloadInjector:
    """
    Delivers a mission's code into its rocket and starts it.

    Args:
        runtime: Container runtime adapter.
        source_control: Source checkout adapter.
        registry: Package registry override. When None, the primary
            registry is used and the mirror fallback is enabled.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        source_control: SourceControl,
        registry: str | None = REGISTRY_OVERRIDE,
    ) -> None:
        self._runtime = runtime
        self._git = source_control
        self._registry_override = registry

    def deploy(self, rocket: Rocket) -> None:
        """
        Deploy the rocket's mission and ignite it.

        Raises:
            RocketStateError: If the rocket carries no mission or is not PREPARING.
            DeploymentError: If checkout, copy or install fails.
        """
        mission = rocket.current_mission
        if mission is None:
            raise RocketStateError(f"Rocket {rocket.id} has no mission assigned")

        tag = f"[INJECTOR] {rocket.id}"
        console.print(f"[cyan]{tag}: checking out {mission.repo_url}@{mission.branch}[/cyan]")

        try:
            staging_path = self._git.clone(mission.repo_url, mission.branch)
        except Exception as e:
            raise DeploymentError(f"Checkout failed for {mission.id}: {e}") from e

        try:
            console.print(f"[cyan]{tag}: injecting payload into {APP_DIR}[/cyan]")
            self._runtime.copy_files(rocket.container_id, staging_path, APP_DIR)
        except Exception as e:
            raise DeploymentError(f"Payload copy failed for {mission.id}: {e}") from e
        finally:
            shutil.rmtree(staging_path, ignore_errors=True)

        self._install_dependencies(rocket)
        self._start_application(rocket)

        rocket.ignite()
        console.print(f"[green]{tag}: ignited[/green]")

    # =========================================================================
    # DEPENDENCIES
    # =========================================================================

    def _write_registry_config(self, rocket: Rocket, registry: str) -> None:
        config = f'[install]\nregistry = "{registry}"\n'
        result = self._exec(
            rocket, ["sh", "-c", f"printf '%s' {shlex.quote(config)} > {APP_DIR}/bunfig.toml"]
        )
        if result.exit_code != 0:
            raise DeploymentError("Could not write bunfig.toml", output=result.stderr)

    def _install_dependencies(self, rocket: Rocket) -> None:
        registry = self._registry_override or DEFAULT_REGISTRY
        self._write_registry_config(rocket, registry)

        console.print(f"[cyan][INJECTOR] {rocket.id}: installing dependencies ({registry})[/cyan]")
        result = self._exec(rocket, INSTALL_COMMAND)
        if result.exit_code == 0:
            console.print(f"[green][INJECTOR] {rocket.id}: dependencies installed[/green]")
            return

        if self._registry_override:
            raise DeploymentError(
                f"Dependency install failed (exit {result.exit_code})",
                output=result.stderr or result.stdout,
            )

        console.print(
            f"[yellow][INJECTOR] {rocket.id}: install failed, retrying via {MIRROR_REGISTRY}[/yellow]"
        )
        retry = self._exec(rocket, INSTALL_COMMAND + ["--registry", MIRROR_REGISTRY])
        if retry.exit_code != 0:
            raise DeploymentError(
                f"Dependency install failed on mirror (exit {retry.exit_code})",
                output=retry.stderr or retry.stdout,
            )
        console.print(f"[green][INJECTOR] {rocket.id}: dependencies installed (mirror)[/green]")

    def _exec(self, rocket: Rocket, argv: list[str]) -> ExecResult:
        try:
            return self._runtime.execute_command(rocket.container_id, argv)
        except Exception as e:
            raise DeploymentError(f"Command {argv[0]} failed in {rocket.id}: {e}") from e

    # =========================================================================
    # IGNITION
    # =========================================================================

    def _start_application(self, rocket: Rocket) -> None:
        """Issue the start command without waiting for it."""

        def _run() -> None:
            try:
                result = self._runtime.execute_command(rocket.container_id, START_COMMAND)
                if result.exit_code != 0:
                    console.print(
                        f"[red][INJECTOR] {rocket.id}: app exited with {result.exit_code}[/red]"
                    )
            except Exception as e:
                console.print(f"[red][INJECTOR] {rocket.id}: app runtime error: {e}[/red]")

        thread = threading.Thread(target=_run, daemon=True, name=f"app-{rocket.id}")
        thread.start()
