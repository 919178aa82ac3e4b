from mocap_tracking.domain.config import (
    ConfigurationError,
    DynamicsProfile,
    MarkerTemplate,
    RigidBodySpec,
    TrackingConfiguration,
)
from mocap_tracking.domain.frame import (
    WORLD_FRAME,
    BackendPose,
    CaptureFrame,
    CloudMessage,
    TrackedPose,
    Transform,
    as_marker_cloud,
    encode_cloud,
)
from mocap_tracking.domain.geometry import (
    fit_rigid_transform,
    quaternion_from_matrix,
    rotation_matrix_from_rpy,
    rpy_from_rotation_matrix,
)

__all__ = [
    "ConfigurationError",
    "DynamicsProfile",
    "MarkerTemplate",
    "RigidBodySpec",
    "TrackingConfiguration",
    "WORLD_FRAME",
    "BackendPose",
    "CaptureFrame",
    "CloudMessage",
    "TrackedPose",
    "Transform",
    "as_marker_cloud",
    "encode_cloud",
    "fit_rigid_transform",
    "quaternion_from_matrix",
    "rotation_matrix_from_rpy",
    "rpy_from_rotation_matrix",
]
