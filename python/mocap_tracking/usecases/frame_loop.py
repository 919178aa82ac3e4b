from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from mocap_tracking.adapters.capture import CaptureBackend, CaptureError
from mocap_tracking.adapters.tracker import ObjectTracker, WarningSink
from mocap_tracking.domain.frame import (
    WORLD_FRAME,
    CaptureFrame,
    CloudMessage,
    Transform,
    as_marker_cloud,
    encode_cloud,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded exponential backoff applied after a failed frame wait.

    ``max_attempts == 0`` makes every frame-wait failure fatal.
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 5.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay < 0.0 or self.max_delay < 0.0:
            raise ValueError("reconnect delays must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1")

    def delays(self):
        delay = self.initial_delay
        for _ in range(self.max_attempts):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


@dataclass
class CycleResult:
    """Everything one cycle produced."""

    frame_number: int
    cloud: Optional[CloudMessage] = None
    transforms: List[Transform] = field(default_factory=list)
    stale: List[Tuple[str, float]] = field(default_factory=list)

    @property
    def timed_out(self) -> bool:
        return self.cloud is None


class FrameLoop:
    """Drives capture -> publish cloud -> track -> merge poses -> publish transforms.

    Each cycle samples the monotonic clock once (staleness arithmetic) and the
    wall clock once (message stamps); every output of the cycle reuses them.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        tracker: ObjectTracker,
        cloud_publisher,
        transform_publisher,
        wall_clock: Callable[[], Any] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        warn: Optional[WarningSink] = None,
        idle: Optional[Callable[[], None]] = None,
        world_frame: str = WORLD_FRAME,
        wait_timeout: Optional[float] = 0.5,
        reconnect: Optional[Callable[[], CaptureBackend]] = None,
        reconnect_policy: ReconnectPolicy = ReconnectPolicy(max_attempts=0),
        sleep: Callable[[float], None] = time.sleep,
        timeout_warning_period: float = 5.0,
        warn_throttled: Optional[Callable[[float, str], None]] = None,
    ):
        if wait_timeout is not None and wait_timeout <= 0.0:
            raise ValueError("wait_timeout must be > 0 or None")
        if timeout_warning_period < 0.0:
            raise ValueError("timeout_warning_period must be >= 0")
        self.backend = backend
        self.tracker = tracker
        self.cloud_publisher = cloud_publisher
        self.transform_publisher = transform_publisher
        self.wall_clock = wall_clock
        self.monotonic = monotonic
        self.warn = warn or logger.warning
        self.idle = idle
        self.world_frame = world_frame
        self.wait_timeout = wait_timeout
        self.reconnect = reconnect
        self.reconnect_policy = reconnect_policy
        self._sleep = sleep
        self.frame_number = 0
        self.timeout_warning_period = timeout_warning_period
        self.warn_throttled = warn_throttled
        self.consecutive_timeouts = 0
        self._last_timeout_warning: Optional[float] = None

    def run(self, is_shutdown: Callable[[], bool]) -> int:
        """Cycle until ``is_shutdown`` returns True; returns the number of frames processed."""
        processed = 0
        while not is_shutdown():
            result = self.run_once()
            if not result.timed_out:
                processed += 1
        return processed

    def run_once(self) -> CycleResult:
        frame = self._wait_frame()
        if frame is None:
            self._report_timeout()
            self._run_idle()
            return CycleResult(frame_number=self.frame_number)

        self.consecutive_timeouts = 0
        self._last_timeout_warning = None
        monotonic_now = self.monotonic()
        stamp = self.wall_clock()
        cloud = as_marker_cloud(frame.point_cloud)

        cloud_msg = encode_cloud(cloud, stamp, self.world_frame)
        self.cloud_publisher.publish(cloud_msg)

        self.tracker.update(cloud, monotonic_now)

        transforms, stale = self._merge_poses(frame, stamp, monotonic_now)
        if transforms:
            self.transform_publisher.send(transforms)

        result = CycleResult(frame_number=self.frame_number, cloud=cloud_msg, transforms=transforms, stale=stale)
        self.frame_number += 1
        self._run_idle()
        return result

    def _merge_poses(self, frame: CaptureFrame, stamp, monotonic_now: float):
        transforms = []
        for pose in frame.rigid_bodies.values():
            transforms.append(self._transform(pose.name, pose.position, pose.rotation, stamp))

        stale = []
        for tracked in self.tracker.objects():
            if tracked.valid:
                transforms.append(self._transform(tracked.name, tracked.position, tracked.rotation, stamp))
            else:
                elapsed = monotonic_now - tracked.last_valid_time
                self.warn("No updated pose for %s for %f s." % (tracked.name, elapsed))
                stale.append((tracked.name, elapsed))
        return transforms, stale

    def _report_timeout(self):
        """Warn about frame-wait timeouts at most once per ``timeout_warning_period``."""
        self.consecutive_timeouts += 1
        message = "No frame from the capture backend (%d consecutive timeouts)" % self.consecutive_timeouts
        if self.warn_throttled is not None:
            self.warn_throttled(self.timeout_warning_period, message)
            return
        now = self.monotonic()
        last = self._last_timeout_warning
        if last is not None and now - last < self.timeout_warning_period:
            return
        self._last_timeout_warning = now
        self.warn(message)

    def _transform(self, name, position, rotation, stamp) -> Transform:
        return Transform(
            parent_frame=self.world_frame,
            child_frame=name,
            translation=tuple(position),
            rotation=tuple(rotation),
            stamp=stamp,
        )

    def _wait_frame(self) -> Optional[CaptureFrame]:
        try:
            return self.backend.wait_for_next_frame(self.wait_timeout)
        except CaptureError as e:
            if self.reconnect is None or self.reconnect_policy.max_attempts == 0:
                raise
            self.warn("Frame wait failed: %s" % e)
            self._reconnect(e)
            return None

    def _reconnect(self, cause: CaptureError):
        self.backend.close()
        last_error = cause
        for attempt, delay in enumerate(self.reconnect_policy.delays(), start=1):
            self._sleep(delay)
            try:
                self.backend = self.reconnect()
            except CaptureError as e:
                last_error = e
                self.warn("Reconnect attempt %d/%d failed: %s" % (attempt, self.reconnect_policy.max_attempts, e))
                continue
            logger.info("Reconnected to capture backend after %d attempt(s)", attempt)
            return
        raise CaptureError("giving up after %d reconnect attempts" % self.reconnect_policy.max_attempts) from last_error

    def _run_idle(self):
        if self.idle is not None:
            self.idle()
