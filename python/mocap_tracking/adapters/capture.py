from __future__ import annotations

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from mocap_tracking.domain.frame import BackendPose, CaptureFrame, as_marker_cloud

logger = logging.getLogger(__name__)

MOCK_TYPE = "mock"


class CaptureError(RuntimeError):
    """Connection to, or frame delivery from, the capture backend failed."""


class CaptureBackend(ABC):
    """Source of marker clouds and backend-reported rigid-body poses."""

    @abstractmethod
    def wait_for_next_frame(self, timeout: Optional[float] = None) -> Optional[CaptureFrame]:
        """Block until the next frame arrives; ``None`` when ``timeout`` expires first."""
        raise NotImplementedError

    def close(self):
        pass


class MockBackend(CaptureBackend):
    """Replays a fixed marker cloud and fixed rigid bodies at a constant rate."""

    def __init__(
        self,
        points: Sequence[Sequence[float]] = (),
        rigid_bodies: Optional[Mapping[str, BackendPose]] = None,
        rate: float = 100.0,
        sleep=time.sleep,
        clock=time.monotonic,
    ):
        if rate <= 0.0:
            raise CaptureError("mock backend rate must be > 0, got %r" % rate)
        self.points = as_marker_cloud(points)
        self.rigid_bodies = dict(rigid_bodies or {})
        self.period = 1.0 / rate
        self._sleep = sleep
        self._clock = clock
        self._next_frame_time = None
        self.frames_delivered = 0

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> "MockBackend":
        rigid_bodies = {}
        for name, values in dict(config.get("rigid_bodies") or {}).items():
            position = tuple(float(v) for v in values["position"])
            rotation = tuple(float(v) for v in values.get("rotation", (0.0, 0.0, 0.0, 1.0)))
            rigid_bodies[name] = BackendPose(name=name, position=position, rotation=rotation)
        return cls(
            points=config.get("points") or (),
            rigid_bodies=rigid_bodies,
            rate=float(config.get("rate", 100.0)),
        )

    def wait_for_next_frame(self, timeout: Optional[float] = None) -> Optional[CaptureFrame]:
        now = self._clock()
        if self._next_frame_time is None:
            self._next_frame_time = now
        delay = self._next_frame_time - now
        if timeout is not None and delay > timeout:
            self._sleep(timeout)
            return None
        if delay > 0.0:
            self._sleep(delay)
        self._next_frame_time += self.period
        self.frames_delivered += 1
        return CaptureFrame(point_cloud=self.points.copy(), rigid_bodies=dict(self.rigid_bodies))


class LibMotionCaptureBackend(CaptureBackend):
    """Adapter for the ``motioncapture`` Python bindings of libmotioncapture.

    The bindings only offer a blocking, non-cancellable ``waitForNextFrame``.
    A daemon grabber thread runs it and hands snapshots of each frame over a
    one-slot queue, so waiting in the caller is bounded by ``timeout``.
    """

    def __init__(self, kind: str, config: Mapping[str, str]):
        try:
            import motioncapture
        except ImportError as e:
            raise CaptureError("motion capture type '%s' needs the 'motioncapture' package: %s" % (kind, e)) from e

        try:
            self._mocap = motioncapture.connect(kind, dict(config))
        except Exception as e:
            raise CaptureError("failed to connect to %s backend with %s: %s" % (kind, dict(config), e)) from e

        self.kind = kind
        self._frames: "queue.Queue[object]" = queue.Queue(maxsize=1)
        self._alive = threading.Event()
        self._alive.set()
        self._grabber = threading.Thread(target=self._grab_loop, name="mocap_grabber", daemon=True)
        self._grabber.start()

    def _grab_loop(self):
        while self._alive.is_set():
            try:
                self._mocap.waitForNextFrame()
                item = self._snapshot()
            except Exception as e:
                item = CaptureError("%s backend failed while waiting for a frame: %s" % (self.kind, e))
                self._alive.clear()
            self._offer(item)

    def _offer(self, item):
        # newest frame wins
        try:
            self._frames.get_nowait()
        except queue.Empty:
            pass
        self._frames.put_nowait(item)

    def _snapshot(self) -> CaptureFrame:
        bodies: Dict[str, BackendPose] = {}
        for name, body in self._mocap.rigidBodies.items():
            position = np.asarray(body.position, dtype=float)
            q = body.rotation
            bodies[name] = BackendPose(
                name=name,
                position=(float(position[0]), float(position[1]), float(position[2])),
                rotation=(float(q.x), float(q.y), float(q.z), float(q.w)),
            )
        return CaptureFrame(point_cloud=as_marker_cloud(self._mocap.pointCloud), rigid_bodies=bodies)

    def wait_for_next_frame(self, timeout: Optional[float] = None) -> Optional[CaptureFrame]:
        try:
            item = self._frames.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, CaptureError):
            raise item
        return item

    def close(self):
        self._alive.clear()


def connect(kind: str, config: Mapping[str, object]) -> CaptureBackend:
    """Open a capture backend of the given type; raises CaptureError on failure."""
    logger.info("Connecting to %s motion capture backend (%s)", kind, dict(config))
    if kind == MOCK_TYPE:
        return MockBackend.from_config(config)
    return LibMotionCaptureBackend(kind, {k: str(v) for k, v in config.items()})
