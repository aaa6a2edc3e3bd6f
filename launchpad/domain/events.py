# -----------------------------------------------------------------------------
# DOMAIN EVENTS - ROCKET LIFECYCLE
# -----------------------------------------------------------------------------
# Immutable records appended by the Rocket aggregate on every transition.
# Callers drain them with Rocket.pull_domain_events() after each operation.
# -----------------------------------------------------------------------------

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """Base class for everything a Rocket reports about itself."""

    rocket_id: str
    event_type: str = "rocket.event"
    occurred_at: datetime = Field(default_factory=_now)

    class Config:
        frozen = True


class MissionAssigned(DomainEvent):
    """A mission was bound to an idle rocket."""

    mission_id: str
    event_type: str = "rocket.mission_assigned"


class RocketIgnited(DomainEvent):
    """The application process was started inside the rocket."""

    mission_id: str
    event_type: str = "rocket.ignited"


class RocketSplashedDown(DomainEvent):
    """The rocket left active duty and entered refurbishment."""

    mission_id: str
    event_type: str = "rocket.splashed_down"


class RefurbishmentCompleted(DomainEvent):
    """Cleanup succeeded; the rocket is idle and reusable again."""

    event_type: str = "rocket.refurbishment_completed"


class RocketDecommissioned(DomainEvent):
    """The rocket was removed from service and must never be reused."""

    previous_status: str
    event_type: str = "rocket.decommissioned"
