from __future__ import annotations

from typing import List, Sequence

import rospy
import tf2_ros
from geometry_msgs.msg import TransformStamped
from sensor_msgs.msg import PointCloud2, PointField

from mocap_tracking.domain.frame import CloudMessage, Transform


class RosCloudPublisher:
    """Publishes marker clouds as sensor_msgs/PointCloud2."""

    def __init__(self, topic: str = "pointCloud", queue_size: int = 1):
        self.pub = rospy.Publisher(topic, PointCloud2, queue_size=queue_size)

    def publish(self, cloud: CloudMessage):
        msg = PointCloud2()
        msg.header.stamp = cloud.stamp
        msg.header.frame_id = cloud.frame_id
        msg.height = cloud.height
        msg.width = cloud.width
        msg.fields = [
            PointField(name=name, offset=offset, datatype=PointField.FLOAT32, count=1)
            for name, offset in cloud.fields
        ]
        msg.is_bigendian = cloud.is_bigendian
        msg.point_step = cloud.point_step
        msg.row_step = cloud.row_step
        msg.data = cloud.data
        msg.is_dense = cloud.is_dense
        try:
            self.pub.publish(msg)
        except rospy.ROSException:
            if not rospy.is_shutdown():
                raise


def to_transform_stamped(transform: Transform) -> TransformStamped:
    msg = TransformStamped()
    msg.header.stamp = transform.stamp
    msg.header.frame_id = transform.parent_frame
    msg.child_frame_id = transform.child_frame
    msg.transform.translation.x = transform.translation[0]
    msg.transform.translation.y = transform.translation[1]
    msg.transform.translation.z = transform.translation[2]
    msg.transform.rotation.x = transform.rotation[0]
    msg.transform.rotation.y = transform.rotation[1]
    msg.transform.rotation.z = transform.rotation[2]
    msg.transform.rotation.w = transform.rotation[3]
    return msg


class RosTransformPublisher:
    """Sends a cycle's transforms to /tf as one batch."""

    def __init__(self):
        self.broadcaster = tf2_ros.TransformBroadcaster()

    def send(self, transforms: Sequence[Transform]):
        batch: List[TransformStamped] = [to_transform_stamped(t) for t in transforms]
        try:
            self.broadcaster.sendTransform(batch)
        except rospy.ROSException:
            if not rospy.is_shutdown():
                raise
