# -----------------------------------------------------------------------------
# LAUNCHPAD - FASTAPI INTERFACE
# -----------------------------------------------------------------------------
# Inbound trigger layer over Mission Control, with WebSocket telemetry.
#
# Endpoints:
# - GET    /health                 : Health check
# - GET    /rockets                : Pool snapshot
# - GET    /missions               : Missions in flight
# - POST   /missions               : Launch a mission
# - DELETE /missions/{mission_id}  : Recycle a mission
# - DELETE /rockets/{rocket_id}    : Decommission a rocket
# - POST   /webhooks/github        : pull_request events -> launch / recycle
# - WS     /telemetry              : Live logs and stats of every rocket
# -----------------------------------------------------------------------------

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.panel import Panel

PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

from launchpad.core.db import InMemoryRocketRepository, PostgresRocketRepository
from launchpad.core.injector import DeploymentError, PayloadInjector
from launchpad.core.mission_control import MissionControl
from launchpad.core.pool import PoolManager
from launchpad.core.ports import Router
from launchpad.core.refurbish import RefurbishUnit
from launchpad.domain.models import Mission, RocketStateError
from launchpad.infra.docker_client import DockerAdapter
from launchpad.infra.git_client import GitClient
from launchpad.infra.router import ROUTER_URL, HttpRouter, RouteTable

console = Console()

VERSION = "1.0.0"
POOL_WARMUP_SIZE = int(os.getenv("LAUNCHPAD_POOL_SIZE", "2"))
REPOSITORY_BACKEND = os.getenv("LAUNCHPAD_REPOSITORY", "memory").lower()

# pull_request actions that (re)deploy a preview; "closed" recycles it
LAUNCH_ACTIONS = {"opened", "reopened", "synchronize"}


# WebSocket connection manager
class ConnectionManager:
    """Fans telemetry out to every connected dashboard."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        console.print(f"[cyan][WS] Dashboard connected ({len(self.active_connections)})[/cyan]")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: dict) -> None:
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                self.disconnect(connection)


manager = ConnectionManager()

# Event loop that owns the WebSocket connections (set at startup)
_loop: asyncio.AbstractEventLoop | None = None


def telemetry_sink(kind: str, payload: dict) -> None:
    """Telemetry callback handed to Mission Control; safe to call from any thread."""
    if _loop is None or _loop.is_closed():
        return
    asyncio.run_coroutine_threadsafe(manager.broadcast({"type": kind, **payload}), _loop)


# =============================================================================
# ENGINE (lazy init)
# =============================================================================


@dataclass
class Engine:
    mission_control: MissionControl
    pool: PoolManager
    router: Router


def build_engine() -> Engine:
    """Wire adapters into the orchestration core."""
    runtime = DockerAdapter()

    if REPOSITORY_BACKEND == "postgres":
        repository = PostgresRocketRepository()
    else:
        repository = InMemoryRocketRepository()

    router: Router = HttpRouter(ROUTER_URL) if ROUTER_URL else RouteTable()
    pool = PoolManager(repository, runtime, RefurbishUnit(runtime))
    injector = PayloadInjector(runtime, GitClient())
    mission_control = MissionControl(pool, injector, runtime, router=router)

    console.print(
        f"[green][LAUNCHPAD] Engine wired (repository={REPOSITORY_BACKEND}, "
        f"router={'edge' if ROUTER_URL else 'in-process'})[/green]"
    )
    return Engine(mission_control=mission_control, pool=pool, router=router)


_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    global _loop
    print_banner()
    _loop = asyncio.get_running_loop()

    engine = get_engine()
    await asyncio.to_thread(engine.pool.warmup, POOL_WARMUP_SIZE)
    console.print("[green]LAUNCHPAD ONLINE[/green]")

    yield

    console.print("[yellow]LAUNCHPAD SHUTTING DOWN[/yellow]")
    engine.mission_control.shutdown()
    _loop = None


app = FastAPI(
    title="LaunchPad",
    description="Ephemeral preview environments, one rocket per pull request",
    version=VERSION,
    lifespan=lifespan,
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class LaunchResponse(BaseModel):
    mission_id: str
    rocket_id: str


class RecycleResponse(BaseModel):
    mission_id: str
    status: str


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check for load balancers."""
    return {"status": "healthy", "service": "launchpad", "version": VERSION}


@app.get("/rockets")
async def list_rockets():
    """Current pool inventory."""
    return await asyncio.to_thread(get_engine().pool.snapshot)


@app.get("/missions")
async def list_missions():
    """Missions currently in flight."""
    return get_engine().mission_control.active_missions()


async def _launch(mission: Mission) -> LaunchResponse:
    engine = get_engine()
    try:
        rocket_id = await asyncio.to_thread(
            engine.mission_control.launch, mission, telemetry_sink
        )
    except DeploymentError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "output": e.output[-2000:]})
    return LaunchResponse(mission_id=mission.id, rocket_id=rocket_id)


async def _recycle(mission_id: str) -> RecycleResponse:
    try:
        await asyncio.to_thread(get_engine().mission_control.recycle, mission_id)
    except RocketStateError as e:
        # Only a rocket left PREPARING by a failed deploy; decommission it instead
        raise HTTPException(status_code=409, detail=str(e))
    return RecycleResponse(mission_id=mission_id, status="recycled")


@app.post("/missions", response_model=LaunchResponse)
async def launch_mission(mission: Mission):
    """Launch a preview for an explicit mission."""
    return await _launch(mission)


@app.delete("/missions/{mission_id}", response_model=RecycleResponse)
async def recycle_mission(mission_id: str):
    """Recycle a mission's rocket. Unknown missions are a no-op."""
    return await _recycle(mission_id)


@app.delete("/rockets/{rocket_id}")
async def decommission_rocket(rocket_id: str):
    """Take a rocket out of service (e.g. one left PREPARING by a failed deploy)."""
    removed = await asyncio.to_thread(get_engine().pool.decommission, rocket_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Rocket not found")
    return {"rocket_id": rocket_id, "status": "decommissioned"}


@app.post("/webhooks/github")
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(default=None),
):
    """
    Translate pull_request events into launches and recycles.

    opened / reopened / synchronize -> launch pr-<number>
    closed                          -> recycle pr-<number>
    """
    if x_github_event != "pull_request":
        return {"status": "ignored", "reason": f"event {x_github_event!r}"}

    payload = await request.json()
    action = payload.get("action")
    number = payload.get("number")
    if number is None:
        raise HTTPException(status_code=400, detail="pull_request payload without number")

    if action == "closed":
        return await _recycle(f"pr-{number}")

    if action not in LAUNCH_ACTIONS:
        return {"status": "ignored", "reason": f"action {action!r}"}

    head = payload.get("pull_request", {}).get("head", {})
    try:
        mission = Mission.from_pull_request(
            number=number,
            repo_url=(head.get("repo") or {}).get("clone_url", ""),
            branch=head.get("ref", ""),
            commit_sha=head.get("sha", ""),
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Incomplete pull_request head: {e}")

    return await _launch(mission)


@app.websocket("/telemetry")
async def telemetry_socket(websocket: WebSocket):
    """Stream every rocket's telemetry to a dashboard."""
    await manager.connect(websocket)
    try:
        while True:
            # Clients only listen; reading keeps the disconnect observable
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
        console.print("[dim][WS] Dashboard disconnected[/dim]")


def print_banner() -> None:
    banner = f"""
    ╔═══════════════════════════════════════════════════╗
    ║              LAUNCHPAD v{VERSION}                     ║
    ║  • One rocket per pull request                    ║
    ║  • Warm container pool with refurbishment         ║
    ║  • Live log & stats telemetry                     ║
    ╚═══════════════════════════════════════════════════╝
    """
    console.print(Panel(banner, border_style="cyan"))


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("LAUNCHPAD_PORT", "5050"))
    uvicorn.run(app, host="0.0.0.0", port=port)
