import numpy as np
import pytest

from mocap_tracking.adapters.tracker import RigidBodyTracker
from mocap_tracking.domain.config import DynamicsProfile, MarkerTemplate, RigidBodySpec
from mocap_tracking.domain.geometry import rotation_matrix_from_rpy

TEMPLATE = ((0.0, 0.0, 0.0), (0.1, 0.0, 0.0), (0.0, 0.15, 0.0), (0.0, 0.0, 0.2))


def _tracker(max_velocity=(1.0, 1.0, 1.0), max_fitness=1e-4, initial=(0.0, 0.0, 0.0)):
    dynamics = [DynamicsProfile("d", max_velocity, (10.0, 10.0, 10.0), 0.5, 0.5, max_fitness)]
    markers = [MarkerTemplate("m", TEMPLATE)]
    bodies = [RigidBodySpec("cf1", 0, 0, initial)]
    tracker = RigidBodyTracker(dynamics, markers, bodies)
    warnings = []
    tracker.set_warning_sink(warnings.append)
    return tracker, warnings


def _cloud(translation, rpy=(0.0, 0.0, 0.0)):
    rotation = rotation_matrix_from_rpy(*rpy)
    return np.array(TEMPLATE) @ rotation.T + np.array(translation)


def test_tracker_follows_small_rigid_motion():
    tracker, warnings = _tracker()

    tracker.update(_cloud((0.01, 0.0, 0.0)), stamp=1.0)
    first = tracker.objects()[0]
    assert first.valid
    assert first.last_valid_time == pytest.approx(1.0)
    assert first.position == pytest.approx((0.01, 0.0, 0.0), abs=1e-6)

    tracker.update(_cloud((0.02, 0.01, 0.0), rpy=(0.0, 0.0, 0.05)), stamp=1.1)
    second = tracker.objects()[0]
    assert second.valid
    assert second.position == pytest.approx((0.02, 0.01, 0.0), abs=1e-6)
    # yaw 0.05 rad about z
    assert second.rotation[2] == pytest.approx(np.sin(0.025), abs=1e-6)
    assert warnings == []


def test_tracker_rejects_implausible_jump_and_keeps_last_pose():
    tracker, warnings = _tracker(max_velocity=(0.5, 0.5, 0.5))
    tracker.update(_cloud((0.0, 0.0, 0.0)), stamp=1.0)

    # 0.04 m in 0.01 s is 4 m/s along x
    tracker.update(_cloud((0.04, 0.0, 0.0)), stamp=1.01)
    pose = tracker.objects()[0]
    assert not pose.valid
    assert pose.last_valid_time == pytest.approx(1.0)
    assert pose.position == pytest.approx((0.0, 0.0, 0.0), abs=1e-6)
    assert any("velocity x" in w for w in warnings)


def test_tracker_rejects_missing_markers_and_bad_fitness():
    tracker, warnings = _tracker()
    tracker.update(np.zeros((0, 3)), stamp=0.5)
    assert not tracker.objects()[0].valid
    assert "template needs 4" in warnings[-1]

    distorted = _cloud((0.0, 0.0, 0.0))
    distorted[1] += (0.05, 0.0, 0.0)
    tracker.update(distorted, stamp=0.6)
    assert not tracker.objects()[0].valid
    assert "fitness score" in warnings[-1]


def test_tracker_rejects_excessive_roll():
    tracker, warnings = _tracker()
    tracker.update(_cloud((0.0, 0.0, 0.0), rpy=(0.6, 0.0, 0.0)), stamp=1.0)
    assert not tracker.objects()[0].valid
    assert "roll" in warnings[-1]


def test_tracker_requires_positive_iterations():
    with pytest.raises(ValueError):
        RigidBodyTracker([], [], [], iterations=0)
