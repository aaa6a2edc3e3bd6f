# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The orchestration engine of LaunchPad:
# - PoolManager: Rocket inventory (warmup / assign / recycle)
# - PayloadInjector: Code delivery and ignition
# - RefurbishUnit: Cleanup and return to pool
# - MissionControl: Launch orchestrator with telemetry and expiry
# - DB: In-memory and PostgreSQL rocket repositories
# -----------------------------------------------------------------------------

from .db import InMemoryRocketRepository, PostgresRocketRepository
from .injector import DeploymentError, PayloadInjector
from .mission_control import MissionControl
from .pool import PoolManager
from .ports import ContainerStats, ExecResult
from .refurbish import RefurbishUnit

__all__ = [
    "InMemoryRocketRepository", "PostgresRocketRepository",
    "PayloadInjector", "DeploymentError",
    "MissionControl",
    "PoolManager",
    "RefurbishUnit",
    "ExecResult", "ContainerStats",
]
