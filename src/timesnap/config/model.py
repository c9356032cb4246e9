from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

from ..host import Launcher, LaunchOptions, Viewport
from ..randomness import UnrandomizeOption
from ..timeline import FrameNumToTime
from .schema import validate_config

if TYPE_CHECKING:
    from ..host import HostPage

PreparePage = Callable[["HostPage"], None]
PreparePageForScreenshot = Callable[["HostPage", int, int], None]


@dataclass(slots=True)
class ViewportOverride:
    width: int | None = None
    height: int | None = None

    def resolve(self, current: Viewport | None) -> Viewport:
        """Fill unset dimensions from the page's current viewport."""

        base = current or Viewport()
        return Viewport(
            width=self.width if self.width is not None else base.width,
            height=self.height if self.height is not None else base.height,
        )


@dataclass(slots=True)
class ClipRect:
    x: float
    y: float
    width: float
    height: float

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(slots=True)
class CaptureConfig:
    url: str = "index.html"
    output_directory: Path = field(default_factory=lambda: Path("."))
    output_pattern: str = "%d.png"
    start: float = 0.0
    start_delay: float = 0.0
    frames: int | None = None
    duration: float | None = None
    fps: float | None = None
    frame_num_to_time: FrameNumToTime | None = None
    maximum_animation_frame_duration: float | None = None
    canvas_capture_mode: str | bool | None = None
    selector: str | None = None
    unrandomize: UnrandomizeOption = False
    viewport: ViewportOverride | None = None
    capture_while_selector_exists: str | None = None
    screenshot_type: str | None = None
    screenshot_quality: int | None = None
    transparent_background: bool = False
    clip: ClipRect | None = None
    headless: bool = True
    executable_path: str | None = None
    launch_arguments: list[str] = field(default_factory=list)
    remote_url: str | None = None
    quiet: bool = False
    log_to_stderr: bool = False
    prepare_page: PreparePage | None = None
    prepare_page_for_screenshot: PreparePageForScreenshot | None = None
    launcher: Launcher | None = None

    @property
    def resolved_url(self) -> str:
        return resolve_url(self.url)

    @property
    def launch_options(self) -> LaunchOptions:
        return LaunchOptions(
            headless=self.headless,
            executable_path=self.executable_path,
            arguments=list(self.launch_arguments),
            remote_url=self.remote_url,
        )


def resolve_url(url: str) -> str:
    """Treat anything without a scheme as a local file path."""

    if "://" in url:
        return url
    return Path(url).resolve().as_uri()


_FIELD_NAMES = {
    "url": "url",
    "outputPattern": "output_pattern",
    "start": "start",
    "startDelay": "start_delay",
    "frames": "frames",
    "duration": "duration",
    "fps": "fps",
    "maximumAnimationFrameDuration": "maximum_animation_frame_duration",
    "canvasCaptureMode": "canvas_capture_mode",
    "selector": "selector",
    "captureWhileSelectorExists": "capture_while_selector_exists",
    "screenshotType": "screenshot_type",
    "screenshotQuality": "screenshot_quality",
    "transparentBackground": "transparent_background",
    "headless": "headless",
    "executablePath": "executable_path",
    "remoteUrl": "remote_url",
    "quiet": "quiet",
    "logToStdErr": "log_to_stderr",
}


def load_config(
    source: Path | Mapping[str, Any],
    *,
    frame_num_to_time: FrameNumToTime | None = None,
    prepare_page: PreparePage | None = None,
    prepare_page_for_screenshot: PreparePageForScreenshot | None = None,
    launcher: Launcher | None = None,
) -> CaptureConfig:
    """Build a ``CaptureConfig`` from a JSON file or a mapping of camelCase options.

    Callables cannot be expressed in JSON, so hooks are passed as keyword
    arguments.
    """

    if isinstance(source, Path):
        data = json.loads(source.read_text(encoding="utf-8"))
    else:
        data = dict(source)
    validate_config(data)

    kwargs: dict[str, Any] = {
        attribute: data[key] for key, attribute in _FIELD_NAMES.items() if key in data
    }
    if "outputDirectory" in data:
        kwargs["output_directory"] = Path(data["outputDirectory"])
    if "unrandomize" in data:
        value = data["unrandomize"]
        kwargs["unrandomize"] = tuple(value) if isinstance(value, list) else value
    if "viewport" in data:
        viewport = data["viewport"]
        kwargs["viewport"] = ViewportOverride(width=viewport.get("width"), height=viewport.get("height"))
    if "clip" in data:
        kwargs["clip"] = ClipRect(**data["clip"])
    if "launchArguments" in data:
        kwargs["launch_arguments"] = list(data["launchArguments"])

    return CaptureConfig(
        **kwargs,
        frame_num_to_time=frame_num_to_time,
        prepare_page=prepare_page,
        prepare_page_for_screenshot=prepare_page_for_screenshot,
        launcher=launcher,
    )
