from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from playwright.sync_api import Error as PlaywrightError

from .clock import VirtualClock
from .config.model import CaptureConfig, ClipRect
from .config.planner import DEFAULT_CANVAS_SELECTOR, CaptureMode, CaptureModeSetting, resolve_capture_mode
from .errors import CaptureError, PageError
from .host import HostPage
from .recording import FrameRegistry, FrameWriter, decode_data_url

logger = logging.getLogger(__name__)

_HOST_FAILURES = (PlaywrightError, PageError, OSError, ValueError)


@dataclass(slots=True)
class CaptureContext:
    page: HostPage
    clock: VirtualClock
    writer: FrameWriter
    registry: FrameRegistry


class CaptureStrategy:
    """Turns a "capture now" signal into persisted output.

    ``install`` runs before navigation, ``before_capture`` once the page is
    ready, ``capture`` at every capture marker and ``after_capture`` while the
    run drains. Only ``capture`` must be provided.
    """

    name = "strategy"

    def install(self, page: HostPage) -> None:
        return None

    def before_capture(self, context: CaptureContext) -> None:
        return None

    def capture(self, context: CaptureContext, frame: int, total_frames: int) -> None:
        raise NotImplementedError

    def after_capture(self, context: CaptureContext) -> None:
        return None

    def _persist(self, context: CaptureContext, frame: int, data: bytes) -> Path:
        path = context.writer.write(frame, data)
        context.registry.add(frame, context.clock.current_time, path, self.name)
        return path


class ScreenshotCapture(CaptureStrategy):
    """Snapshot of the composited page, optionally clipped to an element or rectangle."""

    name = "screenshot"

    def __init__(
        self,
        *,
        image_type: str = "png",
        quality: int | None = None,
        transparent_background: bool = False,
        clip: ClipRect | None = None,
        selector: str | None = None,
    ) -> None:
        self._image_type = image_type
        self._quality = quality
        self._transparent_background = transparent_background
        self._clip = clip
        self._selector = selector

    def snapshot_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "type": self._image_type,
            "omit_background": self._transparent_background,
        }
        if self._quality is not None and self._image_type == "jpeg":
            options["quality"] = self._quality
        if self._selector:
            options["selector"] = self._selector
        elif self._clip is not None:
            options["clip"] = self._clip.as_dict()
        return options

    def capture(self, context: CaptureContext, frame: int, total_frames: int) -> None:
        try:
            data = context.page.snapshot(**self.snapshot_options())
            self._persist(context, frame, data)
        except _HOST_FAILURES as exc:
            msg = f"Screenshot of frame {frame}/{total_frames} failed: {exc}"
            raise CaptureError(msg, frame=frame) from exc


_CANVAS_READ_EXPRESSION = (
    "([selector, type, quality]) =>"
    " window.__timesnap.utils.canvasToDataURL(selector, type, quality)"
)


class CanvasCapture(CaptureStrategy):
    """Reads the target canvas at the moment of each capture."""

    name = "canvas"

    def __init__(self, selector: str, *, mime_type: str = "image/png", quality: int | None = None) -> None:
        self._selector = selector
        self._mime_type = mime_type
        self._quality = quality

    @property
    def selector(self) -> str:
        return self._selector

    def capture(self, context: CaptureContext, frame: int, total_frames: int) -> None:
        encoder_quality = self._quality / 100 if self._quality is not None else None
        try:
            data_url = context.page.evaluate(
                _CANVAS_READ_EXPRESSION,
                [self._selector, self._mime_type, encoder_quality],
            )
            self._persist(context, frame, decode_data_url(data_url))
        except _HOST_FAILURES as exc:
            msg = f"Canvas read of frame {frame}/{total_frames} failed: {exc}"
            raise CaptureError(msg, frame=frame) from exc


# Marks the target canvas dirty on every 2D or WebGL draw call, then
# serializes it inside the page right after the animation callbacks of each
# advance ran, before the drawing buffer is presented.
_RECORDER_SOURCE = r"""
(options) => {
  const ts = (window.__timesnap = window.__timesnap || {});
  if (ts.canvasRecorder || window !== window.top) {
    return;
  }
  ts.advanceHooks = ts.advanceHooks || [];

  const dirty = new WeakSet();
  const queue = [];
  const drawMethods = {
    CanvasRenderingContext2D: [
      "clearRect", "fillRect", "strokeRect", "fillText", "strokeText", "fill",
      "stroke", "drawImage", "putImageData", "drawFocusIfNeeded",
    ],
    WebGLRenderingContext: ["clear", "drawArrays", "drawElements"],
    WebGL2RenderingContext: [
      "clear", "drawArrays", "drawElements", "drawArraysInstanced",
      "drawElementsInstanced", "drawRangeElements", "blitFramebuffer",
    ],
  };
  for (const [typeName, methods] of Object.entries(drawMethods)) {
    const type = window[typeName];
    if (!type) {
      continue;
    }
    for (const method of methods) {
      const original = type.prototype[method];
      if (typeof original !== "function") {
        continue;
      }
      type.prototype[method] = function (...args) {
        if (this.canvas) {
          dirty.add(this.canvas);
        }
        return original.apply(this, args);
      };
    }
  }

  ts.advanceHooks.push((target) => {
    const canvas = document.querySelector(options.selector);
    if (!canvas || !dirty.has(canvas)) {
      return null;
    }
    dirty.delete(canvas);
    queue.push({ time: target, dataURL: canvas.toDataURL(options.type) });
    return null;
  });

  ts.canvasRecorder = {
    pending: () => queue.length,
    drain: () => queue.splice(0, queue.length),
  };
}
"""

_DRAIN_EXPRESSION = "() => window.__timesnap.canvasRecorder ? window.__timesnap.canvasRecorder.drain() : []"


def render_recorder_script(selector: str, mime_type: str = "image/png") -> str:
    return f"({_RECORDER_SOURCE})({json.dumps({'selector': selector, 'type': mime_type})});"


class ImmediateCanvasCapture(CaptureStrategy):
    """Records the target canvas inside the page whenever it was drawn to.

    Output is numbered by recorded drawing, not by capture marker, so a
    canvas that redraws on animation-only ticks yields more files than there
    are capture markers.
    """

    name = "immediate-canvas"

    def __init__(self, selector: str, *, mime_type: str = "image/png") -> None:
        self._selector = selector
        self._mime_type = mime_type
        self._recorded = 0

    @property
    def recorded(self) -> int:
        return self._recorded

    def install(self, page: HostPage) -> None:
        page.inject_before_load(render_recorder_script(self._selector, self._mime_type))
        logger.debug("Canvas recorder installed for %s", self._selector)

    def capture(self, context: CaptureContext, frame: int, total_frames: int) -> None:
        self._drain(context)

    def after_capture(self, context: CaptureContext) -> None:
        self._drain(context)
        logger.info("Recorded %d canvas drawings", self._recorded)

    def _drain(self, context: CaptureContext) -> None:
        try:
            entries = context.page.evaluate(_DRAIN_EXPRESSION) or []
        except (PlaywrightError, PageError) as exc:
            msg = f"Could not collect recorded canvas frames: {exc}"
            raise CaptureError(msg) from exc

        # The page queue is already empty, so every entry is handled here.
        failed: list[int] = []
        for entry in entries:
            self._recorded += 1
            try:
                path = context.writer.write(self._recorded, decode_data_url(entry["dataURL"]))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.error("Recorded canvas frame %d could not be written: %s", self._recorded, exc)
                failed.append(self._recorded)
                continue
            context.registry.add(self._recorded, float(entry["time"]), path, self.name)
        if failed:
            msg = f"Recorded canvas frames {failed} could not be written"
            raise CaptureError(msg, frames=failed)


def create_strategy(config: CaptureConfig, setting: CaptureModeSetting | None = None) -> CaptureStrategy:
    """Select the single strategy for a run from configuration."""

    setting = setting or resolve_capture_mode(config)
    if setting.mode is CaptureMode.IMMEDIATE_CANVAS:
        logger.info("Capture Mode: Immediate Canvas")
        return ImmediateCanvasCapture(setting.selector or DEFAULT_CANVAS_SELECTOR, mime_type=setting.mime_type)
    if setting.mode is CaptureMode.CANVAS:
        logger.info("Capture Mode: Canvas")
        return CanvasCapture(
            setting.selector or DEFAULT_CANVAS_SELECTOR,
            mime_type=setting.mime_type,
            quality=config.screenshot_quality,
        )
    logger.info("Capture Mode: Screenshot")
    return ScreenshotCapture(
        image_type=config.screenshot_type or _image_type_for(config.output_pattern),
        quality=config.screenshot_quality,
        transparent_background=config.transparent_background,
        clip=config.clip,
        selector=setting.selector,
    )


def _image_type_for(pattern: str) -> str:
    return "jpeg" if Path(pattern).suffix.lower() in {".jpg", ".jpeg"} else "png"
