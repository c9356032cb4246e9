from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from ..timeline import FrameNumToTime, default_frame_num_to_time
from .model import CaptureConfig

DEFAULT_DURATION = 5.0
DEFAULT_FPS = 60.0
DEFAULT_CANVAS_SELECTOR = "canvas"
CANVAS_IMAGE_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "jpg": "image/jpeg", "webp": "image/webp"}

# Tolerates float error in ``duration * fps`` before truncating to whole frames.
_FRAME_EPSILON = 1e-9


@dataclass(slots=True, frozen=True)
class FramePlan:
    frames_to_capture: int
    fps: float
    frame_num_to_time: FrameNumToTime
    delay_ms: float
    start_wait_ms: float
    maximum_animation_frame_duration: float | None

    @property
    def frame_duration(self) -> float:
        return 1000.0 / self.fps


class CaptureMode(str, Enum):
    SCREENSHOT = "screenshot"
    CANVAS = "canvas"
    IMMEDIATE_CANVAS = "immediate-canvas"


@dataclass(slots=True, frozen=True)
class CaptureModeSetting:
    mode: CaptureMode
    selector: str | None = None
    mime_type: str = "image/png"


def plan_frames(config: CaptureConfig) -> FramePlan:
    """Resolve frame count and rate.

    An explicit frame count wins, taking its rate from ``frames / duration``
    when only a duration is given. Otherwise the count is ``duration * fps``
    with 5 seconds and 60 fps as defaults.
    """

    fps = config.fps
    if config.frames is not None:
        frames = config.frames
        if not fps:
            fps = frames / config.duration if config.duration else DEFAULT_FPS
    else:
        if not fps:
            fps = DEFAULT_FPS
        duration = config.duration if config.duration else DEFAULT_DURATION
        frames = math.floor(duration * fps + _FRAME_EPSILON)

    if fps <= 0:
        msg = f"Resolved frame rate must be positive, got {fps}"
        raise ValueError(msg)

    frame_num_to_time = config.frame_num_to_time or default_frame_num_to_time(fps)
    return FramePlan(
        frames_to_capture=int(frames),
        fps=float(fps),
        frame_num_to_time=frame_num_to_time,
        delay_ms=1000.0 * config.start,
        start_wait_ms=1000.0 * config.start_delay,
        maximum_animation_frame_duration=config.maximum_animation_frame_duration,
    )


def resolve_capture_mode(config: CaptureConfig) -> CaptureModeSetting:
    """Pick the capture strategy from ``canvas_capture_mode``.

    ``immediate`` or ``immediate:<selector>`` selects immediate canvas capture.
    ``png``/``jpeg``/``webp`` selects deferred canvas capture with that image
    type; any other truthy value selects deferred canvas capture as PNG.
    """

    value = config.canvas_capture_mode
    if not value:
        return CaptureModeSetting(mode=CaptureMode.SCREENSHOT, selector=config.selector)

    if isinstance(value, str) and value.startswith("immediate"):
        remainder = value[len("immediate"):]
        if remainder.startswith(":"):
            remainder = remainder[1:]
        selector = remainder or config.selector or DEFAULT_CANVAS_SELECTOR
        return CaptureModeSetting(mode=CaptureMode.IMMEDIATE_CANVAS, selector=selector)

    mime_type = "image/png"
    if isinstance(value, str) and value.lower() in CANVAS_IMAGE_TYPES:
        mime_type = CANVAS_IMAGE_TYPES[value.lower()]
    return CaptureModeSetting(
        mode=CaptureMode.CANVAS,
        selector=config.selector or DEFAULT_CANVAS_SELECTOR,
        mime_type=mime_type,
    )
