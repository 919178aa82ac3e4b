import sys
import threading
import time
import types

import numpy as np
import pytest

from mocap_tracking.adapters.capture import CaptureError, LibMotionCaptureBackend, MockBackend, connect


class FakeQuaternion:
    def __init__(self, x, y, z, w):
        self.x, self.y, self.z, self.w = x, y, z, w


class FakeRigidBody:
    def __init__(self, position, rotation):
        self.position = np.array(position)
        self.rotation = FakeQuaternion(*rotation)


class FakeMocap:
    def __init__(self, fail=False, gate=None):
        self.fail = fail
        self.gate = gate
        self.pointCloud = np.array([[0.1, 0.2, 0.3]], dtype=np.float32)
        self.rigidBodies = {"cf1": FakeRigidBody([1.0, 2.0, 3.0], (0.0, 0.0, 0.0, 1.0))}

    def waitForNextFrame(self):
        if self.gate is not None:
            self.gate.wait()
        else:
            time.sleep(0.001)
        if self.fail:
            raise RuntimeError("stream closed")


def _install(monkeypatch, mocap=None, error=None):
    module = types.ModuleType("motioncapture")
    calls = []

    def fake_connect(kind, cfg):
        calls.append((kind, cfg))
        if error is not None:
            raise error
        return mocap

    module.connect = fake_connect
    monkeypatch.setitem(sys.modules, "motioncapture", module)
    return calls


def test_mock_backend_times_out_between_frames():
    clock = [0.0]
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        clock[0] += seconds

    backend = MockBackend(points=[[1, 2, 3]], rate=10.0, sleep=sleep, clock=lambda: clock[0])
    first = backend.wait_for_next_frame(timeout=0.05)
    assert first is not None
    np.testing.assert_allclose(first.point_cloud, [[1.0, 2.0, 3.0]])

    assert backend.wait_for_next_frame(timeout=0.05) is None
    assert backend.wait_for_next_frame(timeout=0.05) is not None
    assert sleeps == [0.05, pytest.approx(0.05)]
    assert backend.frames_delivered == 2


def test_mock_backend_from_config_and_connect():
    backend = connect("mock", {"hostname": "localhost", "rate": 50, "points": [[0, 0, 1]],
                               "rigid_bodies": {"cf1": {"position": [1, 2, 3]}}})
    assert isinstance(backend, MockBackend)
    frame = backend.wait_for_next_frame()
    assert frame.rigid_bodies["cf1"].position == (1.0, 2.0, 3.0)
    assert frame.rigid_bodies["cf1"].rotation == (0.0, 0.0, 0.0, 1.0)

    with pytest.raises(CaptureError):
        MockBackend(rate=0.0)


def test_libmotioncapture_backend_delivers_snapshots(monkeypatch):
    calls = _install(monkeypatch, mocap=FakeMocap())
    backend = connect("vicon", {"hostname": "vicon.local"})
    try:
        assert isinstance(backend, LibMotionCaptureBackend)
        assert calls == [("vicon", {"hostname": "vicon.local"})]
        frame = backend.wait_for_next_frame(timeout=2.0)
        assert frame is not None
        np.testing.assert_allclose(frame.point_cloud, [[0.1, 0.2, 0.3]], rtol=1e-6)
        assert frame.rigid_bodies["cf1"].position == (1.0, 2.0, 3.0)
        assert frame.rigid_bodies["cf1"].rotation == (0.0, 0.0, 0.0, 1.0)
    finally:
        backend.close()


def test_libmotioncapture_wait_is_bounded_by_timeout(monkeypatch):
    gate = threading.Event()
    _install(monkeypatch, mocap=FakeMocap(gate=gate))
    backend = LibMotionCaptureBackend("optitrack", {"hostname": "localhost"})
    try:
        assert backend.wait_for_next_frame(timeout=0.05) is None
    finally:
        backend.close()
        gate.set()


def test_libmotioncapture_errors_surface_as_capture_errors(monkeypatch):
    _install(monkeypatch, mocap=FakeMocap(fail=True))
    backend = LibMotionCaptureBackend("vicon", {"hostname": "localhost"})
    with pytest.raises(CaptureError, match="stream closed"):
        backend.wait_for_next_frame(timeout=2.0)

    _install(monkeypatch, error=RuntimeError("no route to host"))
    with pytest.raises(CaptureError, match="no route to host"):
        connect("vicon", {"hostname": "unreachable"})

    monkeypatch.setitem(sys.modules, "motioncapture", None)
    with pytest.raises(CaptureError, match="motioncapture"):
        connect("qualisys", {"hostname": "localhost"})
