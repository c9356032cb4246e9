from __future__ import annotations

from .model import CaptureConfig, ClipRect, ViewportOverride, load_config, resolve_url
from .planner import CaptureMode, CaptureModeSetting, FramePlan, plan_frames, resolve_capture_mode
from .schema import CONFIG_SCHEMA, validate_config

__all__ = [
    "CaptureConfig",
    "CaptureMode",
    "CaptureModeSetting",
    "ClipRect",
    "CONFIG_SCHEMA",
    "FramePlan",
    "ViewportOverride",
    "load_config",
    "plan_frames",
    "resolve_capture_mode",
    "resolve_url",
    "validate_config",
]
