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
# DOMAIN MODELS - MISSIONS & ROCKETS
# -----------------------------------------------------------------------------
# A Mission is the requested work (one pull request to preview).
# A Rocket is one reusable execution unit (a warm container) plus its
# lifecycle state. The Rocket's transition methods are the only way to move
# it between states, and each one is guarded: a transition attempted from the
# wrong state raises RocketStateError and leaves the Rocket untouched.
#
# Lifecycle:
#   IDLE -> PREPARING -> ORBITING -> REFURBISHING -> IDLE
#   any  -> DECOMMISSIONED (terminal)
# -----------------------------------------------------------------------------

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from launchpad.domain.events import (
    DomainEvent,
    MissionAssigned,
    RefurbishmentCompleted,
    RocketDecommissioned,
    RocketIgnited,
    RocketSplashedDown,
)


class RocketStateError(Exception):
    """Raised when a lifecycle transition is attempted from the wrong state."""

    pass


class RocketStatus(str, Enum):
    """
    Lifecycle states of a Rocket.

    A mission is bound in PREPARING, ORBITING and REFURBISHING only.
    """

    IDLE = "IDLE"
    PREPARING = "PREPARING"
    ORBITING = "ORBITING"
    REFURBISHING = "REFURBISHING"
    DECOMMISSIONED = "DECOMMISSIONED"


MISSION_BOUND_STATES = frozenset(
    {RocketStatus.PREPARING, RocketStatus.ORBITING, RocketStatus.REFURBISHING}
)


class Mission(BaseModel):
    """
    One unit of requested work: a branch of a repository to preview.

    Immutable and compared by value. Serialized with camelCase keys
    (repoUrl, commitSha) so snapshots stay readable by the dashboard.
    """

    id: str = Field(..., min_length=1, description="Correlation key, e.g. 'pr-42'")
    repo_url: str = Field(..., min_length=1, alias="repoUrl")
    branch: str = Field(..., min_length=1)
    commit_sha: str = Field("", alias="commitSha")

    class Config:
        frozen = True
        populate_by_name = True
        str_strip_whitespace = True

    @classmethod
    def from_pull_request(
        cls, number: int, repo_url: str, branch: str, commit_sha: str = ""
    ) -> "Mission":
        """Build the mission for a pull request; the id is stable per PR."""
        return cls(id=f"pr-{number}", repo_url=repo_url, branch=branch, commit_sha=commit_sha)

    def to_json(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class Rocket:
    """
    Aggregate root for one reusable execution unit.

    Holds the container handle, lifecycle status, the mission it is flying
    (if any) and the public hostname it is reachable at. Every transition
    appends a DomainEvent to an internal buffer; callers drain it with
    pull_domain_events().
    """

    def __init__(
        self,
        rocket_id: str,
        container_id: str,
        status: RocketStatus = RocketStatus.IDLE,
        current_mission: Mission | None = None,
        assigned_domain: str | None = None,
    ) -> None:
        self.id = rocket_id
        self.container_id = container_id
        self._status = RocketStatus(status)
        self._current_mission = current_mission
        self._assigned_domain = assigned_domain
        self._events: list[DomainEvent] = []

    @property
    def status(self) -> RocketStatus:
        return self._status

    @property
    def current_mission(self) -> Mission | None:
        return self._current_mission

    @property
    def assigned_domain(self) -> str | None:
        return self._assigned_domain

    def __repr__(self) -> str:
        mission_id = self._current_mission.id if self._current_mission else None
        return f"Rocket(id={self.id!r}, status={self._status.value}, mission={mission_id!r})"

    def _require(self, expected: RocketStatus, action: str) -> None:
        if self._status != expected:
            raise RocketStateError(
                f"Rocket {self.id} cannot {action}: status is {self._status.value}, "
                f"expected {expected.value}"
            )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def assign_mission(self, mission: Mission) -> None:
        """IDLE -> PREPARING. Acts as the compare-and-swap for claiming a rocket."""
        self._require(RocketStatus.IDLE, "accept a mission")
        self._current_mission = mission
        self._status = RocketStatus.PREPARING
        self._events.append(MissionAssigned(rocket_id=self.id, mission_id=mission.id))

    def ignite(self) -> None:
        """PREPARING -> ORBITING."""
        self._require(RocketStatus.PREPARING, "ignite")
        self._status = RocketStatus.ORBITING
        self._events.append(RocketIgnited(rocket_id=self.id, mission_id=self._current_mission.id))

    def splash_down(self) -> None:
        """ORBITING -> REFURBISHING."""
        self._require(RocketStatus.ORBITING, "splash down")
        self._status = RocketStatus.REFURBISHING
        self._events.append(
            RocketSplashedDown(rocket_id=self.id, mission_id=self._current_mission.id)
        )

    def finish_refurbishment(self) -> None:
        """REFURBISHING -> IDLE. Releases the mission and the hostname."""
        self._require(RocketStatus.REFURBISHING, "finish refurbishment")
        self._current_mission = None
        self._assigned_domain = None
        self._status = RocketStatus.IDLE
        self._events.append(RefurbishmentCompleted(rocket_id=self.id))

    def decommission(self) -> None:
        """Any state -> DECOMMISSIONED. Always permitted."""
        previous = self._status
        self._current_mission = None
        self._assigned_domain = None
        self._status = RocketStatus.DECOMMISSIONED
        self._events.append(
            RocketDecommissioned(rocket_id=self.id, previous_status=previous.value)
        )

    def assign_domain(self, hostname: str) -> None:
        """Record the public hostname this rocket is served at."""
        self._assigned_domain = hostname

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return the buffered events and clear the buffer."""
        events, self._events = self._events, []
        return events

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "containerId": self.container_id,
            "status": self._status.value,
            "currentMission": self._current_mission.to_json() if self._current_mission else None,
            "assignedDomain": self._assigned_domain,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Rocket":
        """Rehydrate a snapshot. No events are emitted for restored state."""
        mission_data = data.get("currentMission")
        return cls(
            rocket_id=data["id"],
            container_id=data["containerId"],
            status=RocketStatus(data["status"]),
            current_mission=Mission.model_validate(mission_data) if mission_data else None,
            assigned_domain=data.get("assignedDomain"),
        )
