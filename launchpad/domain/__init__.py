# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# The Mission value object, the Rocket aggregate and its lifecycle events.
# No I/O lives here; the core layer drives these through the ports.
# -----------------------------------------------------------------------------

from .events import (
    DomainEvent,
    MissionAssigned,
    RefurbishmentCompleted,
    RocketDecommissioned,
    RocketIgnited,
    RocketSplashedDown,
)
from .models import Mission, Rocket, RocketStateError, RocketStatus

__all__ = [
    "Mission", "Rocket", "RocketStatus", "RocketStateError",
    "DomainEvent", "MissionAssigned", "RocketIgnited", "RocketSplashedDown",
    "RefurbishmentCompleted", "RocketDecommissioned",
]
