"""
Motion capture tracking package: turns per-frame marker clouds from a motion
capture system into a published marker cloud and tracked rigid-body transforms.
"""

from mocap_tracking.adapters.capture import CaptureBackend, CaptureError, MockBackend, connect
from mocap_tracking.adapters.parameters import (
    ConfigurationBuilder,
    build_configuration,
    extract_names,
    flatten_params,
    get_vec,
    load_overrides,
)
from mocap_tracking.adapters.tracker import ObjectTracker, RigidBodyTracker
from mocap_tracking.domain.config import (
    ConfigurationError,
    DynamicsProfile,
    MarkerTemplate,
    RigidBodySpec,
    TrackingConfiguration,
)
from mocap_tracking.domain.frame import BackendPose, CaptureFrame, CloudMessage, TrackedPose, Transform
from mocap_tracking.usecases.frame_loop import CycleResult, FrameLoop, ReconnectPolicy

__all__ = [
    "CaptureBackend",
    "CaptureError",
    "MockBackend",
    "connect",
    "ConfigurationBuilder",
    "build_configuration",
    "extract_names",
    "flatten_params",
    "get_vec",
    "load_overrides",
    "ObjectTracker",
    "RigidBodyTracker",
    "ConfigurationError",
    "DynamicsProfile",
    "MarkerTemplate",
    "RigidBodySpec",
    "TrackingConfiguration",
    "BackendPose",
    "CaptureFrame",
    "CloudMessage",
    "TrackedPose",
    "Transform",
    "CycleResult",
    "FrameLoop",
    "ReconnectPolicy",
]
