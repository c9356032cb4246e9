from __future__ import annotations

import json
import logging

from .host import HostPage

logger = logging.getLogger(__name__)

# Keeps media elements paused natively and derives their position from the
# virtual clock. Elements are rescanned on every advance so ones created after
# load are picked up too.
_MEDIA_SOURCE = r"""
(options) => {
  const ts = (window.__timesnap = window.__timesnap || {});
  if (ts.media || typeof HTMLMediaElement === "undefined") {
    return;
  }
  ts.advanceHooks = ts.advanceHooks || [];

  const proto = HTMLMediaElement.prototype;
  const nativePause = proto.pause;
  const states = new WeakMap();
  const tracked = new Set();
  const now = () => (ts.clock ? ts.clock.now() : 0);
  const later = (fn, ms) =>
    ts.clock ? ts.clock.native.setTimeout(fn, ms) : window.setTimeout(fn, ms);

  const track = (element) => {
    let state = states.get(element);
    if (!state) {
      state = {
        playing: Boolean(element.autoplay),
        start: now(),
        offset: element.currentTime || 0,
      };
      states.set(element, state);
      tracked.add(element);
    }
    return state;
  };

  const position = (element, state) => {
    const rate = element.playbackRate || 1;
    let value = state.offset + ((now() - state.start) / 1000) * rate;
    const duration = element.duration;
    if (Number.isFinite(duration) && duration > 0) {
      value = element.loop ? value % duration : Math.min(value, duration);
    }
    return value;
  };

  const seek = (element, value, wait) => {
    if (Math.abs((element.currentTime || 0) - value) < 1e-6) {
      return null;
    }
    try {
      element.currentTime = value;
    } catch (error) {
      return null;
    }
    if (!wait) {
      return null;
    }
    return new Promise((resolve) => {
      element.addEventListener("seeked", () => resolve(), { once: true });
      later(resolve, options.seekTimeout);
    });
  };

  proto.play = function () {
    const state = track(this);
    if (!state.playing) {
      state.playing = true;
      state.start = now();
      state.offset = this.currentTime || 0;
    }
    nativePause.call(this);
    return Promise.resolve();
  };

  proto.pause = function () {
    const state = track(this);
    if (state.playing) {
      state.offset = position(this, state);
      state.playing = false;
    }
    return nativePause.call(this);
  };

  const sync = (target, forCapture) => {
    document.querySelectorAll("video, audio").forEach(track);
    const waits = [];
    for (const element of tracked) {
      if (!element.isConnected) {
        tracked.delete(element);
        continue;
      }
      const state = states.get(element);
      if (!element.paused) {
        nativePause.call(element);
      }
      if (state.playing) {
        const pending = seek(element, position(element, state), forCapture);
        if (pending) {
          waits.push(pending);
        }
      }
    }
    return waits.length ? Promise.all(waits) : null;
  };

  ts.advanceHooks.push(sync);
  ts.media = { sync, tracked };
}
"""


def render_media_script(*, seek_timeout_ms: int = 1000) -> str:
    return f"({_MEDIA_SOURCE})({json.dumps({'seekTimeout': seek_timeout_ms})});"


def install_media_time_handler(page: HostPage) -> None:
    page.inject_before_load(render_media_script())
    logger.debug("Media time synchronizer installed")
