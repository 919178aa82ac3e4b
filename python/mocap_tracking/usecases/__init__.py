from mocap_tracking.usecases.frame_loop import CycleResult, FrameLoop, ReconnectPolicy

__all__ = ["CycleResult", "FrameLoop", "ReconnectPolicy"]
