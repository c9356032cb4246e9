from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .capture import CaptureContext, CaptureStrategy, create_strategy
from .clock import VirtualClock
from .config.model import CaptureConfig
from .config.planner import FramePlan, plan_frames
from .errors import CaptureError, HookError, TimesnapError
from .host import HostPage, HostSession, launch_or_connect
from .media import install_media_time_handler
from .page_utils import install_page_utils
from .randomness import overwrite_random
from .recording import CapturedFrame, FrameRegistry, FrameWriter
from .timeline import CaptureTimeline, build_timeline

logger = logging.getLogger(__name__)

MANIFEST_NAME = "frames.json"


class SchedulerState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PRIMING = "priming"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[SchedulerState, set[SchedulerState]] = {
    SchedulerState.IDLE: {SchedulerState.INITIALIZING, SchedulerState.FAILED},
    SchedulerState.INITIALIZING: {SchedulerState.PRIMING, SchedulerState.FAILED},
    SchedulerState.PRIMING: {SchedulerState.RUNNING, SchedulerState.FAILED},
    SchedulerState.RUNNING: {SchedulerState.DRAINING, SchedulerState.FAILED},
    SchedulerState.DRAINING: {SchedulerState.DONE, SchedulerState.FAILED},
    SchedulerState.DONE: set(),
    SchedulerState.FAILED: set(),
}


@dataclass(slots=True)
class CaptureResult:
    frames: list[CapturedFrame]
    failed_frames: list[int]
    timeline: CaptureTimeline
    stopped_early: bool
    priming_time: float
    final_time: float
    manifest_path: Path
    states: list[SchedulerState] = field(default_factory=list)


@dataclass(slots=True)
class _RunOutcome:
    stopped_early: bool = False
    failed_frames: list[int] = field(default_factory=list)


class CaptureScheduler:
    """Drive one page through a virtual timeline and capture frames.

    Host commands are issued one at a time; the run owns the browser session
    exclusively and closes it on the way out, best effort on failure.
    """

    def __init__(self) -> None:
        self._state = SchedulerState.IDLE
        self._history: list[SchedulerState] = [SchedulerState.IDLE]

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def history(self) -> list[SchedulerState]:
        return list(self._history)

    def run(self, config: CaptureConfig) -> CaptureResult:
        if self._state is not SchedulerState.IDLE:
            msg = "A scheduler drives a single run"
            raise RuntimeError(msg)

        output_dir = Path(config.output_directory).resolve()
        registry = FrameRegistry(output_dir / MANIFEST_NAME)

        self._transition(SchedulerState.INITIALIZING)
        session: HostSession | None = None
        try:
            plan = plan_frames(config)
            writer = FrameWriter(output_dir, config.output_pattern, quality=config.screenshot_quality)
            strategy = create_strategy(config)
            session = launch_or_connect(config.launch_options, config.launcher)
            page = session.new_page()
            clock = VirtualClock(page)
            context = CaptureContext(page=page, clock=clock, writer=writer, registry=registry)
            self._initialize(config, page, clock, strategy)

            self._transition(SchedulerState.PRIMING)
            priming_time = self._prime(config, plan, context, strategy)

            self._transition(SchedulerState.RUNNING)
            timeline = build_timeline(
                plan.frames_to_capture,
                plan.frame_num_to_time,
                delay_ms=plan.delay_ms,
                priming_offset_ms=priming_time,
                maximum_animation_frame_duration=plan.maximum_animation_frame_duration,
            )
            outcome = self._run_timeline(config, timeline, context, strategy)

            self._transition(SchedulerState.DRAINING)
            try:
                strategy.after_capture(context)
            except CaptureError as exc:
                logger.error("%s", exc)
                outcome.failed_frames.extend(exc.frames)
            session.close()
            self._transition(SchedulerState.DONE)
        except Exception:
            self._transition(SchedulerState.FAILED)
            logger.exception("Capture run failed")
            if session is not None:
                _close_quietly(session)
            raise
        finally:
            registry.flush()

        return CaptureResult(
            frames=registry.records,
            failed_frames=outcome.failed_frames,
            timeline=timeline,
            stopped_early=outcome.stopped_early,
            priming_time=priming_time,
            final_time=clock.current_time,
            manifest_path=output_dir / MANIFEST_NAME,
            states=self.history,
        )

    def _initialize(
        self,
        config: CaptureConfig,
        page: HostPage,
        clock: VirtualClock,
        strategy: CaptureStrategy,
    ) -> None:
        if config.viewport is not None:
            page.set_viewport(config.viewport.resolve(page.viewport_size()))

        # Order matters: page scripts may draw random numbers while they load.
        overwrite_random(page, config.unrandomize)
        clock.install()
        install_page_utils(page)
        install_media_time_handler(page)
        strategy.install(page)

        url = config.resolved_url
        logger.info("Going to %s...", url)
        page.navigate(url, wait_until="networkidle")
        logger.info("Page loaded")

        if config.prepare_page is not None:
            logger.info("Preparing page before screenshots...")
            _call_hook("prepare_page", config.prepare_page, page)
            logger.info("Page prepared")

    def _prime(
        self,
        config: CaptureConfig,
        plan: FramePlan,
        context: CaptureContext,
        strategy: CaptureStrategy,
    ) -> float:
        context.page.wait(plan.start_wait_ms)
        strategy.before_capture(context)

        selector = config.capture_while_selector_exists
        if selector and not context.page.selector_exists(selector):
            logger.info("Waiting for %s to appear...", selector)
            while not context.page.selector_exists(selector):
                context.clock.advance(context.clock.current_time + plan.frame_duration)
            logger.debug("%s appeared at %.2fms", selector, context.clock.current_time)
        return context.clock.current_time

    def _run_timeline(
        self,
        config: CaptureConfig,
        timeline: CaptureTimeline,
        context: CaptureContext,
        strategy: CaptureStrategy,
    ) -> _RunOutcome:
        outcome = _RunOutcome()
        selector = config.capture_while_selector_exists
        started = time.monotonic()

        for marker in timeline:
            if not marker.is_capture:
                context.clock.advance(marker.time)
                continue

            context.clock.advance_for_capture(marker.time)
            if selector and not context.page.selector_exists(selector):
                logger.info("%s is gone, stopping before frame %d", selector, marker.frame)
                outcome.stopped_early = True
                break

            if config.prepare_page_for_screenshot is not None:
                logger.info("Preparing page for screenshot...")
                _call_hook(
                    "prepare_page_for_screenshot",
                    config.prepare_page_for_screenshot,
                    context.page,
                    marker.frame,
                    marker.total_frames,
                )
                logger.info("Page prepared")

            try:
                strategy.capture(context, marker.frame, marker.total_frames)
            except CaptureError as exc:
                logger.error("%s", exc)
                outcome.failed_frames.extend(exc.frames or (marker.frame,))

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info("Elapsed capture time: %d", elapsed_ms)
        return outcome

    def _transition(self, state: SchedulerState) -> None:
        if state not in _TRANSITIONS[self._state]:
            msg = f"Illegal scheduler transition {self._state.value} -> {state.value}"
            raise RuntimeError(msg)
        logger.debug("Scheduler %s -> %s", self._state.value, state.value)
        self._state = state
        self._history.append(state)


def _call_hook(name: str, hook: Callable[..., Any], *args: Any) -> None:
    try:
        hook(*args)
    except TimesnapError:
        raise
    except Exception as exc:
        msg = f"{name} hook raised: {exc}"
        raise HookError(msg) from exc


def _close_quietly(session: HostSession) -> None:
    try:
        session.close()
    except Exception:  # noqa: BLE001
        logger.warning("Could not close browser session", exc_info=True)
