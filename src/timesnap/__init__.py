"""Deterministic frame capture of web pages against a virtual clock."""

from .capture import (
    CanvasCapture,
    CaptureContext,
    CaptureStrategy,
    ImmediateCanvasCapture,
    ScreenshotCapture,
    create_strategy,
)
from .clock import VirtualClock
from .config import CaptureConfig, FramePlan, load_config, plan_frames
from .errors import (
    CaptureError,
    ClockRegressionError,
    HookError,
    HostAcquisitionError,
    InjectionError,
    NavigationError,
    PageError,
    TimesnapError,
)
from .host import HostPage, HostSession, LaunchOptions, Viewport, launch_or_connect
from .orchestrator import CaptureOrchestrator, ExecutionResult, timesnap
from .randomness import RandomMode, RandomSetting, overwrite_random, resolve_random_setting
from .recording import CapturedFrame, FrameRegistry, FrameWriter
from .scheduler import CaptureResult, CaptureScheduler, SchedulerState
from .timeline import CaptureTimeline, Marker, MarkerKind, build_timeline

__all__ = [
    "CanvasCapture",
    "CaptureConfig",
    "CaptureContext",
    "CaptureError",
    "CaptureOrchestrator",
    "CaptureResult",
    "CaptureScheduler",
    "CaptureStrategy",
    "CaptureTimeline",
    "CapturedFrame",
    "ClockRegressionError",
    "ExecutionResult",
    "FramePlan",
    "FrameRegistry",
    "FrameWriter",
    "HookError",
    "HostAcquisitionError",
    "HostPage",
    "HostSession",
    "ImmediateCanvasCapture",
    "InjectionError",
    "LaunchOptions",
    "Marker",
    "MarkerKind",
    "NavigationError",
    "PageError",
    "RandomMode",
    "RandomSetting",
    "SchedulerState",
    "ScreenshotCapture",
    "TimesnapError",
    "Viewport",
    "VirtualClock",
    "build_timeline",
    "create_strategy",
    "launch_or_connect",
    "load_config",
    "overwrite_random",
    "plan_frames",
    "resolve_random_setting",
    "timesnap",
]
