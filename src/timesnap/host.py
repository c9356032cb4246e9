from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from playwright.sync_api import Browser, Error as PlaywrightError, Frame, Page, Playwright
from playwright.sync_api import sync_playwright

from .errors import HostAcquisitionError, InjectionError, NavigationError, PageError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Viewport:
    width: int = 800
    height: int = 600

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(slots=True)
class LaunchOptions:
    """How to obtain a browser for a run."""

    headless: bool = True
    executable_path: str | None = None
    arguments: list[str] = field(default_factory=list)
    remote_url: str | None = None


@runtime_checkable
class HostFrame(Protocol):
    def evaluate(self, expression: str, arg: Any = None) -> Any: ...


@runtime_checkable
class HostPage(Protocol):
    """Capabilities the scheduler needs from a scriptable page."""

    def inject_before_load(self, script: str) -> None: ...

    def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    def navigate(self, url: str, *, wait_until: str = "networkidle") -> None: ...

    def selector_exists(self, selector: str) -> bool: ...

    def snapshot(self, **options: Any) -> bytes: ...

    def enumerate_frames(self) -> Sequence[HostFrame]: ...

    def viewport_size(self) -> Viewport | None: ...

    def set_viewport(self, viewport: Viewport) -> None: ...

    def wait(self, milliseconds: float) -> None: ...


@runtime_checkable
class HostSession(Protocol):
    def new_page(self) -> HostPage: ...

    def close(self) -> None: ...


Launcher = Callable[[LaunchOptions], HostSession]


class PlaywrightPage:
    """``HostPage`` backed by a Playwright sync ``Page``."""

    def __init__(self, page: Page) -> None:
        self._page = page

    def inject_before_load(self, script: str) -> None:
        try:
            self._page.add_init_script(script=script)
        except PlaywrightError as exc:
            msg = f"Browser rejected init script: {exc.message}"
            raise InjectionError(msg) from exc

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        try:
            return self._page.evaluate(expression, arg)
        except PlaywrightError as exc:
            msg = f"Page script failed: {exc.message}"
            raise PageError(msg) from exc

    def navigate(self, url: str, *, wait_until: str = "networkidle") -> None:
        try:
            self._page.goto(url, wait_until=wait_until)  # type: ignore[arg-type]
        except PlaywrightError as exc:
            msg = f"Failed to load {url}: {exc.message}"
            raise NavigationError(msg) from exc

    def selector_exists(self, selector: str) -> bool:
        try:
            return self._page.query_selector(selector) is not None
        except PlaywrightError as exc:
            msg = f"Could not look up {selector!r}: {exc.message}"
            raise PageError(msg) from exc

    def snapshot(self, **options: Any) -> bytes:
        selector = options.pop("selector", None)
        if selector:
            element = self._page.query_selector(selector)
            if element is None:
                msg = f"No element matches {selector!r}"
                raise PlaywrightError(msg)
            options.pop("clip", None)
            return element.screenshot(**options)
        return self._page.screenshot(**options)

    def enumerate_frames(self) -> Sequence[Frame]:
        frames: list[Frame] = []
        _collect_frames(self._page.main_frame, frames)
        return frames

    def viewport_size(self) -> Viewport | None:
        size = self._page.viewport_size
        if size is None:
            return None
        return Viewport(width=size["width"], height=size["height"])

    def set_viewport(self, viewport: Viewport) -> None:
        self._page.set_viewport_size(viewport.as_dict())  # type: ignore[arg-type]

    def wait(self, milliseconds: float) -> None:
        if milliseconds > 0:
            self._page.wait_for_timeout(milliseconds)


def _collect_frames(frame: Frame, collected: list[Frame]) -> None:
    if frame.is_detached():
        return
    collected.append(frame)
    for child in frame.child_frames:
        _collect_frames(child, collected)


class PlaywrightSession:
    """Owns the Playwright driver and a single browser."""

    def __init__(self, playwright: Playwright, browser: Browser, *, owns_browser: bool = True) -> None:
        self._playwright = playwright
        self._browser = browser
        self._owns_browser = owns_browser
        self._closed = False

    def new_page(self) -> PlaywrightPage:
        return PlaywrightPage(self._browser.new_page())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._owns_browser:
                self._browser.close()
        finally:
            self._playwright.stop()


def launch_or_connect(options: LaunchOptions, launcher: Launcher | None = None) -> HostSession:
    """Obtain a browser session, preferring a caller launcher, then a remote endpoint."""

    if launcher is not None:
        try:
            return launcher(options)
        except Exception as exc:
            msg = f"Custom launcher failed: {exc}"
            raise HostAcquisitionError(msg) from exc

    playwright = sync_playwright().start()
    try:
        if options.remote_url:
            logger.debug("Connecting to %s", options.remote_url)
            browser = playwright.chromium.connect_over_cdp(options.remote_url)
        else:
            browser = playwright.chromium.launch(
                headless=options.headless,
                executable_path=options.executable_path,
                args=list(options.arguments),
            )
    except PlaywrightError as exc:
        playwright.stop()
        msg = f"Could not acquire browser: {exc.message}"
        raise HostAcquisitionError(msg) from exc
    return PlaywrightSession(playwright, browser)
