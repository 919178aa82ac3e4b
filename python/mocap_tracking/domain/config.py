from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

Vec3 = Tuple[float, float, float]


class ConfigurationError(ValueError):
    """Raised when the tracking parameters cannot be turned into a configuration."""


@dataclass(frozen=True)
class DynamicsProfile:
    """Physically plausible motion limits used to reject implausible fits."""

    name: str
    max_velocity: Vec3
    max_angular_velocity: Vec3
    max_roll: float
    max_pitch: float
    max_fitness_score: float


@dataclass(frozen=True)
class MarkerTemplate:
    """Marker geometry of a rigid body, offset already applied."""

    name: str
    points: Tuple[Vec3, ...]

    def __len__(self):
        return len(self.points)


@dataclass(frozen=True)
class RigidBodySpec:
    name: str
    marker_index: int
    dynamics_index: int
    initial_position: Vec3


@dataclass(frozen=True)
class TrackingConfiguration:
    """Arena collections consumed by the object tracker.

    Rigid bodies refer to markers and dynamics by index; the indices are
    resolved once when the configuration is built.
    """

    dynamics: Tuple[DynamicsProfile, ...]
    markers: Tuple[MarkerTemplate, ...]
    rigid_bodies: Tuple[RigidBodySpec, ...]

    def marker_for(self, body: RigidBodySpec) -> MarkerTemplate:
        return self.markers[body.marker_index]

    def dynamics_for(self, body: RigidBodySpec) -> DynamicsProfile:
        return self.dynamics[body.dynamics_index]
