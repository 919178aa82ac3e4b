#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Motion capture tracking node.

This node:
1. Connects to a motion capture system (vicon, optitrack, qualisys, ..., or mock)
2. Publishes the raw marker cloud on ~point_cloud_topic every frame
3. Fits the markers to the configured rigid bodies with the object tracker
4. Broadcasts backend-reported and tracked rigid-body poses on /tf
"""

import time

import rospy

from mocap_tracking.adapters.capture import MOCK_TYPE, CaptureError, connect
from mocap_tracking.adapters.parameters import build_configuration, flatten_params
from mocap_tracking.adapters.ros_output import RosCloudPublisher, RosTransformPublisher
from mocap_tracking.adapters.tracker import RigidBodyTracker
from mocap_tracking.domain.config import ConfigurationError
from mocap_tracking.usecases.frame_loop import FrameLoop, ReconnectPolicy


class MotionCaptureTrackingNode:
    def __init__(self):
        rospy.init_node('motion_capture_tracking_node', anonymous=False)

        # Load parameters
        self.motion_capture_type = rospy.get_param('~type', 'vicon')
        self.hostname = rospy.get_param('~hostname', 'localhost')
        self.world_frame = rospy.get_param('~world_frame', 'world')
        self.point_cloud_topic = rospy.get_param('~point_cloud_topic', 'pointCloud')
        self.wait_timeout = rospy.get_param('~wait_timeout', 0.5)
        self.reconnect_policy = ReconnectPolicy(
            max_attempts=rospy.get_param('~reconnect_attempts', 3),
            initial_delay=rospy.get_param('~reconnect_initial_delay', 0.5),
            max_delay=rospy.get_param('~reconnect_max_delay', 5.0),
        )

        # Tracking configuration from the private namespace
        overrides = flatten_params(rospy.get_param('~', {}))
        try:
            self.configuration = build_configuration(overrides)
        except ConfigurationError as e:
            rospy.logfatal("Invalid tracking configuration: %s", str(e))
            raise
        rospy.loginfo("Loaded %d dynamics, %d marker and %d rigid body configurations",
                      len(self.configuration.dynamics), len(self.configuration.markers),
                      len(self.configuration.rigid_bodies))

        self.backend = self._connect()

        self.tracker = RigidBodyTracker(
            self.configuration.dynamics,
            self.configuration.markers,
            self.configuration.rigid_bodies,
            start_time=time.monotonic(),
        )
        self.tracker.set_warning_sink(rospy.logwarn)

        # Publishers
        self.loop = FrameLoop(
            backend=self.backend,
            tracker=self.tracker,
            cloud_publisher=RosCloudPublisher(self.point_cloud_topic),
            transform_publisher=RosTransformPublisher(),
            wall_clock=rospy.Time.now,
            monotonic=time.monotonic,
            warn=rospy.logwarn,
            world_frame=self.world_frame,
            wait_timeout=self.wait_timeout,
            reconnect=self._connect,
            reconnect_policy=self.reconnect_policy,
            timeout_warning_period=rospy.get_param('~timeout_warning_period', 5.0),
            warn_throttled=rospy.logwarn_throttle,
        )
        rospy.on_shutdown(self._on_shutdown)
        rospy.loginfo("Motion capture tracking node initialized")

    def _backend_config(self):
        config = {'hostname': self.hostname}
        if self.motion_capture_type == MOCK_TYPE:
            config.update(rospy.get_param('~mock', {}))
        return config

    def _connect(self):
        try:
            return connect(self.motion_capture_type, self._backend_config())
        except CaptureError as e:
            rospy.logerr("Could not connect to %s at %s: %s", self.motion_capture_type, self.hostname, str(e))
            raise

    def spin(self):
        processed = self.loop.run(rospy.is_shutdown)
        rospy.loginfo("Processed %d frames", processed)

    def _on_shutdown(self):
        self.loop.backend.close()


def main():
    try:
        node = MotionCaptureTrackingNode()
        node.spin()
    except rospy.ROSInterruptException:
        pass


if __name__ == '__main__':
    main()
