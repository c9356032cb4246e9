from __future__ import annotations

import json
import logging

from playwright.sync_api import Error as PlaywrightError

from .errors import ClockRegressionError, PageError
from .host import HostPage

logger = logging.getLogger(__name__)

# 2000-01-01T00:00:00Z. ``Date.now()`` inside the page reports this plus the
# virtual time so wall-clock readings are identical between runs.
DEFAULT_EPOCH_MS = 946684800000

# Installed into every frame before any page script runs. Exposes
# ``window.__timesnap.clock`` and the ``advanceHooks`` list other init scripts
# register with.
_CLOCK_SOURCE = r"""
(options) => {
  const ts = (window.__timesnap = window.__timesnap || {});
  if (ts.clock) {
    return;
  }
  ts.advanceHooks = ts.advanceHooks || [];

  const native = {
    Date: window.Date,
    setTimeout: window.setTimeout.bind(window),
    clearTimeout: window.clearTimeout.bind(window),
    requestAnimationFrame: window.requestAnimationFrame
      ? window.requestAnimationFrame.bind(window)
      : null,
  };

  const epoch = options.epoch;
  let currentTime = 0;
  let pendingFrames = new Map();
  let nextFrameId = 1;
  const timers = new Map();
  let nextTimerId = 1;
  let runningTimers = false;

  const report = (error) => {
    native.setTimeout(() => {
      throw error;
    }, 0);
  };

  const NativeDate = native.Date;
  function VirtualDate(...args) {
    if (!(this instanceof VirtualDate)) {
      return new NativeDate(epoch + currentTime).toString();
    }
    if (args.length === 0) {
      return new NativeDate(epoch + currentTime);
    }
    return new NativeDate(...args);
  }
  VirtualDate.prototype = NativeDate.prototype;
  VirtualDate.now = () => epoch + currentTime;
  VirtualDate.parse = NativeDate.parse;
  VirtualDate.UTC = NativeDate.UTC;
  window.Date = VirtualDate;

  if (window.performance) {
    Object.defineProperty(window.performance, "now", {
      configurable: true,
      value: () => currentTime,
    });
  }

  window.requestAnimationFrame = (callback) => {
    const id = nextFrameId++;
    pendingFrames.set(id, callback);
    return id;
  };
  window.cancelAnimationFrame = (id) => {
    pendingFrames.delete(id);
  };

  const addTimer = (callback, delay, args, repeat) => {
    const id = nextTimerId++;
    const fn =
      typeof callback === "function" ? callback : () => (0, eval)(String(callback));
    let wait = Math.max(0, Number(delay) || 0);
    // Timers scheduled from a timer callback wait at least 1ms, so a
    // zero-delay chain cannot keep a single advance busy forever.
    if (runningTimers) {
      wait = Math.max(wait, 1);
    }
    timers.set(id, { id, due: currentTime + wait, wait, fn, args, repeat });
    return id;
  };
  window.setTimeout = (callback, delay, ...args) => addTimer(callback, delay, args, false);
  window.setInterval = (callback, delay, ...args) => addTimer(callback, delay, args, true);
  window.clearTimeout = (id) => {
    timers.delete(id);
  };
  window.clearInterval = window.clearTimeout;

  const nextDueTimer = (target) => {
    let next = null;
    for (const timer of timers.values()) {
      if (timer.due > target) {
        continue;
      }
      if (!next || timer.due < next.due || (timer.due === next.due && timer.id < next.id)) {
        next = timer;
      }
    }
    return next;
  };

  const runTimers = (target) => {
    runningTimers = true;
    try {
      drainTimers(target);
    } finally {
      runningTimers = false;
    }
  };

  const drainTimers = (target) => {
    for (let timer = nextDueTimer(target); timer; timer = nextDueTimer(target)) {
      currentTime = Math.max(currentTime, timer.due);
      if (timer.repeat) {
        timer.due += Math.max(timer.wait, 1);
      } else {
        timers.delete(timer.id);
      }
      try {
        timer.fn(...timer.args);
      } catch (error) {
        report(error);
      }
    }
  };

  const runAnimationFrames = (target) => {
    const batch = pendingFrames;
    pendingFrames = new Map();
    for (const callback of batch.values()) {
      try {
        callback(target);
      } catch (error) {
        report(error);
      }
    }
  };

  const runHooks = (target, forCapture) => {
    const waits = [];
    for (const hook of ts.advanceHooks) {
      try {
        const result = hook(target, forCapture);
        if (result && typeof result.then === "function") {
          waits.push(result);
        }
      } catch (error) {
        report(error);
      }
    }
    return waits;
  };

  const advance = (target, forCapture) => {
    if (target < currentTime) {
      throw new Error(`virtual time cannot move from ${currentTime} back to ${target}`);
    }
    runTimers(target);
    currentTime = target;
    runAnimationFrames(target);
    return runHooks(target, forCapture);
  };

  const nativeFrame = () =>
    new Promise((resolve) => {
      let settled = false;
      const done = () => {
        if (!settled) {
          settled = true;
          resolve();
        }
      };
      if (native.requestAnimationFrame) {
        native.requestAnimationFrame(done);
      }
      native.setTimeout(done, options.flushTimeout);
    });

  ts.clock = {
    native,
    now: () => currentTime,
    advance: (target) => {
      advance(target, false);
      return currentTime;
    },
    advanceForCapture: async (target) => {
      await Promise.all(advance(target, true));
      await nativeFrame();
      return currentTime;
    },
  };
}
"""


def render_clock_script(*, epoch_ms: int = DEFAULT_EPOCH_MS, flush_timeout_ms: int = 100) -> str:
    options = {"epoch": epoch_ms, "flushTimeout": flush_timeout_ms}
    return f"({_CLOCK_SOURCE})({json.dumps(options)});"


_ADVANCE_EXPRESSION = "(target) => window.__timesnap && window.__timesnap.clock && window.__timesnap.clock.advance(target)"
_ADVANCE_FOR_CAPTURE_EXPRESSION = (
    "(target) => window.__timesnap && window.__timesnap.clock"
    " && window.__timesnap.clock.advanceForCapture(target)"
)


class VirtualClock:
    """Session-scoped virtual time for one page.

    The Python side tracks the time the page was last advanced to and refuses
    to move backwards. Every advance is applied to each frame of the page, the
    frame tree being enumerated again each time so frames created after load
    follow the same clock.
    """

    def __init__(self, page: HostPage, *, epoch_ms: int = DEFAULT_EPOCH_MS) -> None:
        self._page = page
        self._epoch_ms = epoch_ms
        self._time = 0.0
        self._installed = False
        self._advances = 0

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def advances(self) -> int:
        return self._advances

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        self._page.inject_before_load(render_clock_script(epoch_ms=self._epoch_ms))
        self._installed = True
        logger.debug("Virtual clock installed (epoch %d)", self._epoch_ms)

    def advance(self, target: float) -> None:
        self._apply(_ADVANCE_EXPRESSION, target)

    def advance_for_capture(self, target: float) -> None:
        self._apply(_ADVANCE_FOR_CAPTURE_EXPRESSION, target)

    def _apply(self, expression: str, target: float) -> None:
        if target < self._time:
            msg = f"Virtual time cannot move from {self._time} back to {target}"
            raise ClockRegressionError(msg)
        for frame in self._page.enumerate_frames():
            try:
                frame.evaluate(expression, target)
            except PlaywrightError as exc:
                msg = f"Advancing the page clock to {target} failed: {exc.message}"
                raise PageError(msg) from exc
        self._time = target
        self._advances += 1
