from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pytest
from PIL import Image

from timesnap.host import LaunchOptions, Viewport


def png_bytes(color: tuple[int, int, int, int] = (255, 0, 0, 255), size: tuple[int, int] = (4, 3)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(color: tuple[int, int, int, int] = (0, 0, 255, 255)) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(color)).decode("ascii")


@dataclass
class Advance:
    time: float
    for_capture: bool
    frame_index: int


class FakeFrame:
    def __init__(self, page: "FakePage", index: int) -> None:
        self._page = page
        self.index = index

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        if self._page.fail_advances and "advance" in expression:
            from playwright.sync_api import Error as PlaywrightError

            raise PlaywrightError("Execution context was destroyed")
        if "advanceForCapture" in expression:
            self._page.record_advance(arg, True, self.index)
            return arg
        if "clock.advance" in expression:
            self._page.record_advance(arg, False, self.index)
            return arg
        return self._page.evaluate(expression, arg)


@dataclass
class FakePage:
    """Scripted stand-in for a browser page.

    ``selector_presence`` decides, from the page's virtual time, whether a
    selector currently matches.
    """

    frame_count: int = 1
    selector_presence: Callable[[str, float], bool] = lambda selector, time: True
    viewport: Viewport | None = field(default_factory=lambda: Viewport(width=1024, height=768))
    reject_scripts: bool = False
    fail_snapshot_frames: set[int] = field(default_factory=set)
    draw_on_advance: bool = False
    fail_advances: bool = False
    injected: list[str] = field(default_factory=list)
    advances: list[Advance] = field(default_factory=list)
    navigations: list[tuple[str, str]] = field(default_factory=list)
    snapshots: list[dict[str, Any]] = field(default_factory=list)
    evaluations: list[tuple[str, Any]] = field(default_factory=list)
    waits: list[float] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    virtual_time: float = 0.0
    recorder_queue: list[dict[str, Any]] = field(default_factory=list)

    def inject_before_load(self, script: str) -> None:
        if self.reject_scripts:
            from timesnap.errors import InjectionError

            raise InjectionError("init scripts are disabled")
        self.injected.append(script)
        self.events.append("inject")

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluations.append((expression, arg))
        if "canvasToDataURL" in expression:
            return png_data_url()
        if "canvasRecorder" in expression:
            drained = list(self.recorder_queue)
            self.recorder_queue.clear()
            return drained
        return None

    def navigate(self, url: str, *, wait_until: str = "networkidle") -> None:
        self.navigations.append((url, wait_until))
        self.events.append("navigate")

    def selector_exists(self, selector: str) -> bool:
        return self.selector_presence(selector, self.virtual_time)

    def snapshot(self, **options: Any) -> bytes:
        self.snapshots.append(options)
        self.events.append("snapshot")
        if len(self.snapshots) in self.fail_snapshot_frames:
            from playwright.sync_api import Error as PlaywrightError

            raise PlaywrightError("snapshot failed")
        return png_bytes()

    def enumerate_frames(self) -> list[FakeFrame]:
        return [FakeFrame(self, index) for index in range(self.frame_count)]

    def viewport_size(self) -> Viewport | None:
        return self.viewport

    def set_viewport(self, viewport: Viewport) -> None:
        self.viewport = viewport

    def wait(self, milliseconds: float) -> None:
        self.waits.append(milliseconds)

    def record_advance(self, time: float, for_capture: bool, frame_index: int) -> None:
        self.advances.append(Advance(time=time, for_capture=for_capture, frame_index=frame_index))
        if frame_index == 0:
            self.virtual_time = time
            if self.draw_on_advance:
                self.recorder_queue.append({"time": time, "dataURL": png_data_url()})

    @property
    def main_frame_advances(self) -> list[Advance]:
        return [advance for advance in self.advances if advance.frame_index == 0]


class FakeSession:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False
        self.fail_close = False
        self.launch_options: LaunchOptions | None = None

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        if self.fail_close:
            raise OSError("browser pipe closed")
        self.closed = True


@pytest.fixture(autouse=True)
def _restore_package_logger():
    logger = logging.getLogger("timesnap")
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level
    yield
    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "artifacts"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


@pytest.fixture()
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture()
def fake_session(fake_page: FakePage) -> FakeSession:
    return FakeSession(fake_page)


@pytest.fixture()
def launcher(fake_session: FakeSession) -> Callable[[LaunchOptions], FakeSession]:
    def _launch(options: LaunchOptions) -> FakeSession:
        fake_session.launch_options = options
        return fake_session

    return _launch
