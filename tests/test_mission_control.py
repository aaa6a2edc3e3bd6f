# =============================================================================
# LAUNCHPAD MISSION CONTROL TESTS
# =============================================================================
# Tests for launch orchestration, telemetry, expiry and recycle.
# =============================================================================

import threading

import pytest

from conftest import wait_for
from launchpad.core.injector import DeploymentError, PayloadInjector
from launchpad.core.mission_control import (
    MISSION_TTL_SECONDS,
    STATS_INTERVAL_SECONDS,
    MissionControl,
    hostname_for,
)
from launchpad.core.pool import PoolManager
from launchpad.core.ports import ExecResult, RouterError
from launchpad.core.refurbish import RefurbishUnit
from launchpad.domain.models import RocketStatus
from launchpad.infra.router import RouteTable


class TelemetryRecorder:
    """Thread-safe telemetry sink."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []
        self._lock = threading.Lock()

    def __call__(self, kind: str, payload: dict) -> None:
        with self._lock:
            self.events.append((kind, payload))

    def of(self, kind: str) -> list[dict]:
        with self._lock:
            return [payload for k, payload in self.events if k == kind]


@pytest.fixture
def router():
    return RouteTable()


@pytest.fixture
def pool(repository, runtime):
    return PoolManager(repository, runtime, RefurbishUnit(runtime))


@pytest.fixture
def build_control(pool, runtime, git, router):
    controls = []

    def _build(ttl_seconds: float = 60, stats_interval: float = 60) -> MissionControl:
        control = MissionControl(
            pool,
            PayloadInjector(runtime, git, registry=None),
            runtime,
            router=router,
            ttl_seconds=ttl_seconds,
            stats_interval=stats_interval,
            domain="dev.local",
        )
        controls.append(control)
        return control

    yield _build

    for control in controls:
        control.shutdown()


@pytest.fixture
def sink():
    return TelemetryRecorder()


class TestConstants:
    """Test timing defaults."""

    def test_defaults(self):
        """Stats every 5s, expiry after 10 minutes."""
        assert STATS_INTERVAL_SECONDS == 5
        assert MISSION_TTL_SECONDS == 600


class TestHostname:
    """Test hostname derivation."""

    def test_plain_id(self):
        assert hostname_for("pr-1", "dev.local") == "pr-1.dev.local"

    def test_unsafe_characters_replaced(self):
        """Ids are lowercased and reduced to DNS-safe labels."""
        assert hostname_for("Feature/Cart_2", "preview.io") == "feature-cart-2.preview.io"


class TestLaunch:
    """Test the launch sequence."""

    def test_launch_returns_orbiting_rocket(self, build_control, repository, sink, mission):
        """launch deploys and returns the rocket id."""
        rocket_id = build_control().launch(mission, sink)

        rocket = repository.find_by_id(rocket_id)
        assert rocket.status == RocketStatus.ORBITING
        assert rocket.current_mission.id == "pr-1"
        assert rocket.assigned_domain == "pr-1.dev.local"

    def test_launch_registers_route(self, build_control, router, runtime, sink, mission):
        """The hostname points at the rocket's exposed port."""
        build_control().launch(mission, sink)
        assert router.resolve("pr-1.dev.local") == f"http://localhost:{runtime.port}"

    def test_launch_without_router(self, pool, runtime, git, sink, mission):
        """Routing is optional."""
        control = MissionControl(pool, PayloadInjector(runtime, git, registry=None), runtime)
        try:
            rocket_id = control.launch(mission, sink)
            assert pool.find_rocket(rocket_id).assigned_domain.startswith("pr-1.")
        finally:
            control.shutdown()

    def test_logs_forwarded(self, build_control, repository, runtime, sink, mission):
        """Every log line becomes a log telemetry event."""
        rocket_id = build_control().launch(mission, sink)
        container_id = repository.find_by_id(rocket_id).container_id

        runtime.log_callbacks[container_id]("Listening on :3000")

        assert sink.of("log") == [{"rocketId": rocket_id, "text": "Listening on :3000"}]

    def test_stats_polled(self, build_control, sink, mission):
        """Stats samples are forwarded on every tick."""
        rocket_id = build_control(stats_interval=0.01).launch(mission, sink)

        assert wait_for(lambda: len(sink.of("stats")) >= 2)
        sample = sink.of("stats")[0]
        assert sample == {"rocketId": rocket_id, "cpu": "12.00%", "memory": "10.0MiB / 512.0MiB"}

    def test_deploy_failure_leaves_rocket_preparing(
        self, build_control, repository, runtime, router, sink, mission
    ):
        """A failed deploy raises and leaves the rocket for inspection."""
        runtime.fail_when(lambda argv: argv[:2] == ["bun", "install"], ExecResult("", "E404", 1))

        with pytest.raises(DeploymentError):
            build_control().launch(mission, sink)

        rockets = repository.find_all()
        assert len(rockets) == 1
        assert rockets[0].status == RocketStatus.PREPARING
        assert router.routes() == {}


class TestStatsSelfCancel:
    """Test that the poller stops once the rocket leaves duty."""

    def test_stops_after_external_recycle(self, build_control, pool, runtime, sink, mission):
        """Recycling behind Mission Control's back still stops the poll."""
        control = build_control(stats_interval=0.01)
        control.launch(mission, sink)
        flight = control._flights["pr-1"]

        pool.recycle("pr-1")

        assert wait_for(lambda: flight.stopped)
        calls = runtime.stats_calls
        threading.Event().wait(0.05)
        assert runtime.stats_calls == calls


class TestExpiry:
    """Test TTL recycle."""

    def test_expiry_recycles_rocket(self, build_control, repository, router, runtime, sink, mission):
        """After the TTL the rocket is IDLE, unrouted and a final log is sent."""
        rocket_id = build_control(ttl_seconds=0.05).launch(mission, sink)

        assert wait_for(lambda: repository.find_by_id(rocket_id).status == RocketStatus.IDLE)
        assert wait_for(lambda: any("expired" in p["text"] for p in sink.of("log")))
        assert router.resolve("pr-1.dev.local") is None
        assert runtime.log_streams_closed == [repository.find_by_id(rocket_id).container_id]

    def test_expiry_after_manual_recycle_is_noop(self, build_control, repository, sink, mission):
        """A mission recycled early does not get a second recycle."""
        control = build_control(ttl_seconds=0.05)
        rocket_id = control.launch(mission, sink)
        control.recycle("pr-1")

        threading.Event().wait(0.1)
        assert repository.find_by_id(rocket_id).status == RocketStatus.IDLE
        assert not any("expired" in p["text"] for p in sink.of("log"))


class TestRecycle:
    """Test the upward recycle operation."""

    def test_recycle_releases_everything(self, build_control, repository, router, runtime, sink, mission):
        """Recycle returns the rocket, drops the route and stops telemetry."""
        control = build_control()
        rocket_id = control.launch(mission, sink)

        control.recycle("pr-1")

        rocket = repository.find_by_id(rocket_id)
        assert rocket.status == RocketStatus.IDLE
        assert router.routes() == {}
        assert runtime.log_streams_closed == [rocket.container_id]
        assert control.active_missions() == []

    def test_recycle_twice(self, build_control, repository, sink, mission):
        """A second recycle is a no-op."""
        control = build_control()
        rocket_id = control.launch(mission, sink)
        control.recycle("pr-1")
        control.recycle("pr-1")
        assert repository.find_by_id(rocket_id).status == RocketStatus.IDLE

    def test_recycle_unknown_mission(self, build_control):
        """Unknown missions are ignored."""
        build_control().recycle("pr-999")

    def test_router_failure_does_not_block_recycle(self, pool, runtime, git, repository, sink, mission):
        """An edge outage on unregister is logged, the rocket still returns."""

        class FlakyRouter(RouteTable):
            def unregister(self, hostname):
                raise RouterError("edge down")

        control = MissionControl(
            pool, PayloadInjector(runtime, git, registry=None), runtime, router=FlakyRouter()
        )
        try:
            rocket_id = control.launch(mission, sink)
            control.recycle("pr-1")
            assert repository.find_by_id(rocket_id).status == RocketStatus.IDLE
        finally:
            control.shutdown()

    def test_relaunch_recycles_previous_flight(self, build_control, runtime, sink, mission):
        """Launching an active mission again reuses the refurbished rocket."""
        control = build_control()
        first = control.launch(mission, sink)
        second = control.launch(mission, sink)

        assert first == second
        assert len(runtime.created) == 1
        assert [m["mission_id"] for m in control.active_missions()] == ["pr-1"]

    def test_parallel_missions(self, build_control, make_mission, sink):
        """Distinct missions fly on distinct rockets."""
        control = build_control()
        ids = {control.launch(make_mission(f"pr-{i}"), sink) for i in range(3)}
        assert len(ids) == 3
        assert len(control.active_missions()) == 3


class TestShutdown:
    """Test shutdown."""

    def test_shutdown_detaches_flights(self, build_control, repository, runtime, sink, mission):
        """Shutdown stops telemetry but leaves rockets orbiting."""
        control = build_control()
        rocket_id = control.launch(mission, sink)
        control.shutdown()

        assert control.active_missions() == []
        assert repository.find_by_id(rocket_id).status == RocketStatus.ORBITING
        assert len(runtime.log_streams_closed) == 1


class TestFailedLaunchRecovery:
    """Test that a rocket is always reclaimed once its deploy succeeded."""

    def test_relaunch_after_failed_deploy_expires_live_rocket(
        self, build_control, repository, runtime, sink, mission
    ):
        """A stale PREPARING rocket does not shadow the live one on expiry."""
        installs = []

        def first_deploy_fails(argv):
            if argv[:2] != ["bun", "install"]:
                return False
            installs.append(argv)
            return len(installs) <= 2

        runtime.fail_when(first_deploy_fails, ExecResult("", "ETIMEDOUT", 1))
        control = build_control(ttl_seconds=0.05)

        with pytest.raises(DeploymentError):
            control.launch(mission, sink)
        stale = repository.find_all()[0]

        rocket_id = control.launch(mission, sink)

        assert rocket_id != stale.id
        assert wait_for(lambda: repository.find_by_id(rocket_id).status == RocketStatus.IDLE)
        assert repository.find_by_id(stale.id).status == RocketStatus.PREPARING

    def test_recycle_after_failed_deploy_targets_live_rocket(
        self, build_control, repository, runtime, router, sink, mission
    ):
        """An explicit recycle also picks the ORBITING rocket."""
        installs = []

        def first_deploy_fails(argv):
            if argv[:2] != ["bun", "install"]:
                return False
            installs.append(argv)
            return len(installs) <= 2

        runtime.fail_when(first_deploy_fails, ExecResult("", "ETIMEDOUT", 1))
        control = build_control()
        with pytest.raises(DeploymentError):
            control.launch(mission, sink)

        rocket_id = control.launch(mission, sink)
        control.recycle("pr-1")

        assert repository.find_by_id(rocket_id).status == RocketStatus.IDLE
        assert router.routes() == {}

    def test_route_registration_failure_recycles(self, pool, runtime, git, repository, sink, mission):
        """An edge outage during launch returns the deployed rocket to the pool."""

        class DownRouter(RouteTable):
            def register(self, hostname, target_url):
                raise RouterError("edge down")

        control = MissionControl(
            pool,
            PayloadInjector(runtime, git, registry=None),
            runtime,
            router=DownRouter(),
            ttl_seconds=0.05,
        )
        try:
            with pytest.raises(RouterError):
                control.launch(mission, sink)

            rockets = repository.find_all()
            assert len(rockets) == 1
            assert rockets[0].status == RocketStatus.IDLE
            assert control.active_missions() == []
        finally:
            control.shutdown()

    def test_log_stream_failure_recycles(self, build_control, repository, runtime, router, sink, mission):
        """A failed log attach recycles the rocket and drops its route."""

        def broken_stream(container_id, on_line):
            raise ConnectionError("daemon gone")

        runtime.stream_logs = broken_stream
        control = build_control()

        with pytest.raises(ConnectionError):
            control.launch(mission, sink)

        assert repository.find_all()[0].status == RocketStatus.IDLE
        assert router.routes() == {}
        assert control.active_missions() == []
