from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from conftest import FakePage, FakeSession, png_data_url
from timesnap.clock import render_clock_script
from timesnap.config import CaptureConfig, ViewportOverride
from timesnap.capture import CaptureStrategy
from timesnap.errors import CaptureError, HookError, HostAcquisitionError, InjectionError, PageError
from timesnap.orchestrator import CaptureOrchestrator, timesnap
from timesnap.scheduler import CaptureScheduler, SchedulerState


def _config(artifact_dir: Path, launcher, **overrides) -> CaptureConfig:
    return CaptureConfig(
        url="https://example.com/",
        output_directory=artifact_dir / "frames",
        launcher=launcher,
        **overrides,
    )


def test_three_frames_at_ten_fps(artifact_dir: Path, fake_page: FakePage, fake_session: FakeSession, launcher) -> None:
    result = CaptureScheduler().run(_config(artifact_dir, launcher, frames=3, fps=10))

    assert [(a.time, a.for_capture) for a in fake_page.main_frame_advances] == [
        (0, True),
        (100, True),
        (200, True),
    ]
    assert [frame.frame for frame in result.frames] == [1, 2, 3]
    assert [frame.time for frame in result.frames] == [0, 100, 200]
    assert all(Path(frame.path).exists() for frame in result.frames)
    assert (artifact_dir / "frames" / "3.png").exists()
    assert result.failed_frames == []
    assert result.stopped_early is False
    assert fake_session.closed
    assert result.states == [
        SchedulerState.IDLE,
        SchedulerState.INITIALIZING,
        SchedulerState.PRIMING,
        SchedulerState.RUNNING,
        SchedulerState.DRAINING,
        SchedulerState.DONE,
    ]


def test_gap_subdivision_inserts_animation_tick(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    result = CaptureScheduler().run(
        _config(artifact_dir, launcher, duration=2, fps=1, maximum_animation_frame_duration=500)
    )

    assert [(a.time, a.for_capture) for a in fake_page.main_frame_advances] == [
        (0, True),
        (500, False),
        (1000, True),
    ]
    assert len(result.frames) == 2


def test_stop_selector_ends_run_early(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    frame_duration = 100.0
    # Present through frame 5 (t=400), gone by frame 6 (t=500).
    fake_page.selector_presence = lambda selector, time: time < 5 * frame_duration - 1

    result = CaptureScheduler().run(
        _config(artifact_dir, launcher, frames=10, fps=10, capture_while_selector_exists="#running")
    )

    assert [frame.frame for frame in result.frames] == [1, 2, 3, 4, 5]
    assert result.stopped_early is True
    assert fake_page.main_frame_advances[-1].time == 500
    assert result.states[-1] is SchedulerState.DONE


def test_priming_advances_until_selector_appears(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    fake_page.selector_presence = lambda selector, time: time >= 50

    result = CaptureScheduler().run(
        _config(artifact_dir, launcher, frames=2, fps=50, capture_while_selector_exists="#ready")
    )

    times = [a.time for a in fake_page.main_frame_advances]
    assert times[:3] == [20, 40, 60]
    assert result.priming_time == 60
    assert [frame.time for frame in result.frames] == [60, 80]
    assert times == sorted(times)


def test_advances_never_regress(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    CaptureScheduler().run(
        _config(
            artifact_dir,
            launcher,
            frames=8,
            fps=7,
            start=0.3,
            maximum_animation_frame_duration=33,
            frame_num_to_time=lambda frame, total: ((frame - 1) // 2) * 120.0,
        )
    )

    times = [a.time for a in fake_page.main_frame_advances]
    assert times == sorted(times)
    assert times[0] == 20


def test_initialization_order(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    CaptureScheduler().run(_config(artifact_dir, launcher, frames=1, unrandomize=3))

    assert fake_page.events[:5] == ["inject", "inject", "inject", "inject", "navigate"]
    assert "Math.random" in fake_page.injected[0]
    assert fake_page.injected[1] == render_clock_script()
    assert fake_page.navigations == [("https://example.com/", "networkidle")]


def test_viewport_and_start_delay(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    CaptureScheduler().run(
        _config(artifact_dir, launcher, frames=1, start_delay=0.5, viewport=ViewportOverride(width=320))
    )

    assert fake_page.viewport is not None
    assert (fake_page.viewport.width, fake_page.viewport.height) == (320, 768)
    assert fake_page.waits == [500]


def test_hooks_receive_page_and_frame_numbers(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    calls: list[tuple] = []

    def prepare_page(page) -> None:
        calls.append(("prepare", page, len(page.advances)))

    def prepare_page_for_screenshot(page, frame: int, total: int) -> None:
        calls.append(("screenshot", frame, total, page.virtual_time))

    CaptureScheduler().run(
        _config(
            artifact_dir,
            launcher,
            frames=2,
            fps=10,
            prepare_page=prepare_page,
            prepare_page_for_screenshot=prepare_page_for_screenshot,
        )
    )

    assert calls == [
        ("prepare", fake_page, 0),
        ("screenshot", 1, 2, 0),
        ("screenshot", 2, 2, 100),
    ]


def test_hook_failure_aborts_and_closes_session(
    artifact_dir: Path, fake_page: FakePage, fake_session: FakeSession, launcher
) -> None:
    def broken(page, frame: int, total: int) -> None:
        if frame == 2:
            raise RuntimeError("boom")

    scheduler = CaptureScheduler()
    with pytest.raises(HookError):
        scheduler.run(_config(artifact_dir, launcher, frames=4, fps=10, prepare_page_for_screenshot=broken))

    assert scheduler.state is SchedulerState.FAILED
    assert fake_session.closed
    assert len(fake_page.snapshots) == 1
    manifest = json.loads((artifact_dir / "frames" / "frames.json").read_text(encoding="utf-8"))
    assert [entry["frame"] for entry in manifest] == [1]


def test_capture_error_is_logged_and_run_continues(
    artifact_dir: Path, fake_page: FakePage, launcher, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="timesnap")
    fake_page.fail_snapshot_frames = {2}

    result = CaptureScheduler().run(_config(artifact_dir, launcher, frames=3, fps=10))

    assert result.failed_frames == [2]
    assert [frame.frame for frame in result.frames] == [1, 3]
    assert "frame 2/3" in caplog.text


def test_rejected_init_script_fails_before_navigation(artifact_dir: Path, fake_session: FakeSession, launcher) -> None:
    fake_session.page.reject_scripts = True

    scheduler = CaptureScheduler()
    with pytest.raises(InjectionError):
        scheduler.run(_config(artifact_dir, launcher, frames=1, unrandomize=True))

    assert fake_session.page.navigations == []
    assert fake_session.closed
    assert scheduler.history == [SchedulerState.IDLE, SchedulerState.INITIALIZING, SchedulerState.FAILED]


def test_launcher_failure_is_host_acquisition_error(artifact_dir: Path) -> None:
    def launcher(options):
        raise ConnectionRefusedError("no browser")

    with pytest.raises(HostAcquisitionError):
        CaptureScheduler().run(_config(artifact_dir, launcher, frames=1))


def test_canvas_mode_reads_canvas_each_frame(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    result = CaptureScheduler().run(
        _config(artifact_dir, launcher, frames=2, fps=10, canvas_capture_mode="png", selector="#stage")
    )

    reads = [arg for expression, arg in fake_page.evaluations if "canvasToDataURL" in expression]
    assert reads == [["#stage", "image/png", None], ["#stage", "image/png", None]]
    assert fake_page.snapshots == []
    assert [frame.strategy for frame in result.frames] == ["canvas", "canvas"]


def test_immediate_canvas_mode_persists_every_recorded_drawing(
    artifact_dir: Path, fake_page: FakePage, launcher
) -> None:
    fake_page.draw_on_advance = True

    result = CaptureScheduler().run(
        _config(
            artifact_dir,
            launcher,
            duration=2,
            fps=1,
            maximum_animation_frame_duration=250,
            canvas_capture_mode="immediate:#stage",
        )
    )

    assert any("canvasRecorder" in script and '"#stage"' in script for script in fake_page.injected)
    # 2 capture ticks plus 3 animation-only ticks, each drawing once.
    assert [frame.time for frame in result.frames] == [0, 250, 500, 750, 1000]
    assert [frame.frame for frame in result.frames] == [1, 2, 3, 4, 5]
    assert fake_page.snapshots == []


def test_scheduler_runs_once(artifact_dir: Path, launcher) -> None:
    scheduler = CaptureScheduler()
    scheduler.run(_config(artifact_dir, launcher, frames=1))

    with pytest.raises(RuntimeError):
        scheduler.run(_config(artifact_dir, launcher, frames=1))


def test_orchestrator_loads_mapping(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    orchestrator = CaptureOrchestrator()
    execution = orchestrator.execute(
        {"url": "https://example.com/", "outputDirectory": str(artifact_dir / "run"), "frames": 2, "fps": 4},
        launcher=launcher,
    )

    assert execution.config.frames == 2
    assert [frame.time for frame in execution.result.frames] == [0, 250]
    assert execution.result.manifest_path.exists()


def test_bad_recorded_drawing_does_not_lose_the_rest_of_its_batch(
    artifact_dir: Path, fake_page: FakePage, launcher
) -> None:
    fake_page.recorder_queue = [
        {"time": 0, "dataURL": "data:image/png;base64,@@@"},
        {"time": 0, "dataURL": png_data_url()},
    ]

    result = CaptureScheduler().run(
        _config(artifact_dir, launcher, frames=1, canvas_capture_mode="immediate")
    )

    assert [frame.frame for frame in result.frames] == [2]
    assert result.failed_frames == [1]
    assert (artifact_dir / "frames" / "2.png").exists()
    assert result.states[-1] is SchedulerState.DONE


def test_failure_while_draining_is_recorded_not_fatal(
    artifact_dir: Path, fake_session: FakeSession, launcher, monkeypatch: pytest.MonkeyPatch
) -> None:
    class LateFailure(CaptureStrategy):
        name = "late"

        def capture(self, context, frame: int, total_frames: int) -> None:
            return None

        def after_capture(self, context) -> None:
            raise CaptureError("lost while draining", frames=[7, 8])

    monkeypatch.setattr("timesnap.scheduler.create_strategy", lambda config: LateFailure())

    result = CaptureScheduler().run(_config(artifact_dir, launcher, frames=2, fps=10))

    assert result.failed_frames == [7, 8]
    assert result.states[-1] is SchedulerState.DONE
    assert fake_session.closed


def test_unplannable_run_fails_before_launching(artifact_dir: Path, fake_session: FakeSession, launcher) -> None:
    scheduler = CaptureScheduler()
    with pytest.raises(ValueError):
        scheduler.run(_config(artifact_dir, launcher, frames=2, fps=-1))

    assert scheduler.history == [SchedulerState.IDLE, SchedulerState.INITIALIZING, SchedulerState.FAILED]
    assert fake_session.launch_options is None


def test_session_close_failure_marks_run_failed(artifact_dir: Path, fake_session: FakeSession, launcher) -> None:
    fake_session.fail_close = True

    scheduler = CaptureScheduler()
    with pytest.raises(OSError):
        scheduler.run(_config(artifact_dir, launcher, frames=1))

    assert scheduler.history[-2:] == [SchedulerState.DRAINING, SchedulerState.FAILED]


def test_page_crash_aborts_run_as_page_error(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    fake_page.fail_advances = True

    scheduler = CaptureScheduler()
    with pytest.raises(PageError):
        scheduler.run(_config(artifact_dir, launcher, frames=2, fps=10))

    assert scheduler.state is SchedulerState.FAILED


def test_timesnap_returns_result_on_success(artifact_dir: Path, fake_page: FakePage, launcher) -> None:
    result = timesnap(_config(artifact_dir, launcher, frames=2, fps=10, quiet=True))

    assert result is not None
    assert [frame.time for frame in result.frames] == [0, 100]


def test_timesnap_logs_page_errors_and_returns_none(
    artifact_dir: Path, fake_page: FakePage, launcher, capsys: pytest.CaptureFixture[str]
) -> None:
    fake_page.fail_advances = True

    assert timesnap(_config(artifact_dir, launcher, frames=2, fps=10)) is None
    assert "Execution context was destroyed" in capsys.readouterr().out


def test_timesnap_logs_unexpected_errors_and_returns_none(
    artifact_dir: Path, launcher, capsys: pytest.CaptureFixture[str]
) -> None:
    config = _config(artifact_dir, launcher, frames=2, frame_num_to_time=lambda frame, total: -5.0)

    assert timesnap(config) is None
    assert "negative time" in capsys.readouterr().out
