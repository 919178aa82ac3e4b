# ros_output imports rospy; import it directly where ROS is available.
from mocap_tracking.adapters.capture import (
    CaptureBackend,
    CaptureError,
    LibMotionCaptureBackend,
    MockBackend,
    connect,
)
from mocap_tracking.adapters.parameters import ConfigurationBuilder, build_configuration
from mocap_tracking.adapters.tracker import ObjectTracker, RigidBodyTracker

__all__ = [
    "CaptureBackend",
    "CaptureError",
    "LibMotionCaptureBackend",
    "MockBackend",
    "connect",
    "ConfigurationBuilder",
    "build_configuration",
    "ObjectTracker",
    "RigidBodyTracker",
]
