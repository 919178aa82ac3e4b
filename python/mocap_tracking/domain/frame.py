from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np

from mocap_tracking.domain.config import Vec3
from mocap_tracking.domain.geometry import Quaternion

WORLD_FRAME = "world"

# x, y, z as little-endian float32 at byte offsets 0, 4, 8
POINT_FIELDS = (("x", 0), ("y", 4), ("z", 8))
POINT_STEP = 12


def as_marker_cloud(points) -> np.ndarray:
    """Copy an N x 3 array-like into a fresh float64 marker cloud.

    Empty input gives a 0 x 3 cloud; any other shape is a ValueError.
    """
    cloud = np.array(points, dtype=np.float64)
    if cloud.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if cloud.ndim != 2 or cloud.shape[1] != 3:
        raise ValueError("marker cloud must be N x 3, got shape %s" % (cloud.shape,))
    return cloud


@dataclass(frozen=True)
class BackendPose:
    """Pose reported directly by the capture backend; trusted as is."""

    name: str
    position: Vec3
    rotation: Quaternion


@dataclass
class CaptureFrame:
    """One frame delivered by a capture backend."""

    point_cloud: np.ndarray
    rigid_bodies: Dict[str, BackendPose] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackedPose:
    """Per-body state exposed by the object tracker after an update."""

    name: str
    position: Vec3
    rotation: Quaternion
    valid: bool
    last_valid_time: float


@dataclass(frozen=True)
class Transform:
    parent_frame: str
    child_frame: str
    translation: Vec3
    rotation: Quaternion
    stamp: Any


@dataclass(frozen=True)
class CloudMessage:
    """Marker cloud laid out as a PointCloud2 payload."""

    frame_id: str
    stamp: Any
    width: int
    data: bytes
    height: int = 1
    point_step: int = POINT_STEP
    is_bigendian: bool = False
    is_dense: bool = True

    @property
    def row_step(self) -> int:
        return len(self.data)

    @property
    def fields(self) -> Tuple[Tuple[str, int], ...]:
        return POINT_FIELDS


def encode_cloud(cloud: np.ndarray, stamp, frame_id: str = WORLD_FRAME) -> CloudMessage:
    """Serialize an N x 3 cloud as row-major little-endian float32 triples."""
    cloud = as_marker_cloud(cloud)
    data = np.ascontiguousarray(cloud, dtype="<f4").tobytes()
    return CloudMessage(frame_id=frame_id, stamp=stamp, width=int(cloud.shape[0]), data=data)
