from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import numpy as np

from mocap_tracking.domain.config import DynamicsProfile, MarkerTemplate, RigidBodySpec
from mocap_tracking.domain.frame import TrackedPose, as_marker_cloud
from mocap_tracking.domain.geometry import (
    fit_rigid_transform,
    quaternion_from_matrix,
    rpy_from_rotation_matrix,
)

WarningSink = Callable[[str], None]

logger = logging.getLogger(__name__)


class ObjectTracker(ABC):
    """Fits marker clouds to known rigid-body templates across frames."""

    def __init__(
        self,
        dynamics: Sequence[DynamicsProfile],
        markers: Sequence[MarkerTemplate],
        rigid_bodies: Sequence[RigidBodySpec],
    ):
        self.dynamics = tuple(dynamics)
        self.markers = tuple(markers)
        self.rigid_bodies = tuple(rigid_bodies)
        self._warn: WarningSink = logger.warning

    def set_warning_sink(self, sink: WarningSink):
        self._warn = sink

    @abstractmethod
    def update(self, cloud: np.ndarray, stamp: float):
        """Fit every body against ``cloud``; ``stamp`` is a monotonic time in seconds."""
        raise NotImplementedError

    @abstractmethod
    def objects(self) -> Iterable[TrackedPose]:
        raise NotImplementedError


@dataclass
class _BodyState:
    spec: RigidBodySpec
    rotation: np.ndarray
    translation: np.ndarray
    valid: bool = False
    last_valid_time: float = 0.0
    initialized: bool = False


class RigidBodyTracker(ObjectTracker):
    """Reference tracker: nearest-marker correspondences refined with Kabsch fits.

    A fit is accepted only if its fitness score (mean squared residual) and
    the implied motion since the last valid fit respect the body's dynamics
    profile. Bodies start from their configured initial position.
    """

    def __init__(
        self,
        dynamics: Sequence[DynamicsProfile],
        markers: Sequence[MarkerTemplate],
        rigid_bodies: Sequence[RigidBodySpec],
        iterations: int = 5,
        start_time: float = 0.0,
    ):
        super().__init__(dynamics, markers, rigid_bodies)
        if iterations < 1:
            raise ValueError("iterations must be >= 1")
        self.iterations = iterations
        self._states: List[_BodyState] = [
            _BodyState(
                spec=spec,
                rotation=np.eye(3),
                translation=np.array(spec.initial_position, dtype=float),
                last_valid_time=start_time,
            )
            for spec in self.rigid_bodies
        ]

    def update(self, cloud: np.ndarray, stamp: float):
        cloud = as_marker_cloud(cloud)
        for state in self._states:
            state.valid = self._update_body(state, cloud, stamp)

    def objects(self) -> List[TrackedPose]:
        poses = []
        for state in self._states:
            t = state.translation
            poses.append(
                TrackedPose(
                    name=state.spec.name,
                    position=(float(t[0]), float(t[1]), float(t[2])),
                    rotation=quaternion_from_matrix(state.rotation),
                    valid=state.valid,
                    last_valid_time=state.last_valid_time,
                )
            )
        return poses

    def _update_body(self, state: _BodyState, cloud: np.ndarray, stamp: float) -> bool:
        template = np.array(self.markers[state.spec.marker_index].points, dtype=float)
        dynamics = self.dynamics[state.spec.dynamics_index]
        name = state.spec.name

        if cloud.shape[0] < template.shape[0]:
            self._warn("%s: only %d markers visible, template needs %d" % (name, cloud.shape[0], template.shape[0]))
            return False

        rotation, translation, score = self._fit(template, cloud, state.rotation, state.translation)
        if score > dynamics.max_fitness_score:
            self._warn("%s: fitness score %f exceeds %f" % (name, score, dynamics.max_fitness_score))
            return False

        reason = self._check_dynamics(state, dynamics, rotation, translation, stamp)
        if reason is not None:
            self._warn("%s: %s" % (name, reason))
            return False

        state.rotation = rotation
        state.translation = translation
        state.last_valid_time = stamp
        state.initialized = True
        return True

    def _fit(self, template: np.ndarray, cloud: np.ndarray, rotation: np.ndarray, translation: np.ndarray):
        score = np.inf
        for _ in range(self.iterations):
            predicted = template @ rotation.T + translation
            distances = np.linalg.norm(predicted[:, None, :] - cloud[None, :, :], axis=2)
            matched = cloud[np.argmin(distances, axis=1)]
            rotation, translation = fit_rigid_transform(template, matched)
            residual = template @ rotation.T + translation - matched
            score = float(np.mean(np.sum(residual ** 2, axis=1)))
        return rotation, translation, score

    def _check_dynamics(
        self,
        state: _BodyState,
        dynamics: DynamicsProfile,
        rotation: np.ndarray,
        translation: np.ndarray,
        stamp: float,
    ) -> Optional[str]:
        roll, pitch, _ = rpy_from_rotation_matrix(rotation)
        if abs(roll) > dynamics.max_roll:
            return "roll %f exceeds %f" % (roll, dynamics.max_roll)
        if abs(pitch) > dynamics.max_pitch:
            return "pitch %f exceeds %f" % (pitch, dynamics.max_pitch)

        # the first fit has no previous pose to measure motion against
        if not state.initialized:
            return None
        dt = stamp - state.last_valid_time
        if dt <= 0.0:
            return None

        velocity = np.abs(translation - state.translation) / dt
        for axis, v, limit in zip("xyz", velocity, dynamics.max_velocity):
            if v > limit:
                return "velocity %s %f exceeds %f" % (axis, v, limit)

        rates = np.abs(np.array(rpy_from_rotation_matrix(rotation @ state.rotation.T))) / dt
        for axis, rate, limit in zip(("roll", "pitch", "yaw"), rates, dynamics.max_angular_velocity):
            if rate > limit:
                return "%s rate %f exceeds %f" % (axis, rate, limit)
        return None
