from __future__ import annotations

from typing import Sequence


class TimesnapError(Exception):
    """Base class for errors raised while driving a capture run."""


class HostAcquisitionError(TimesnapError):
    """The browser could not be launched or connected to."""


class InjectionError(TimesnapError):
    """A script could not be installed into the page before navigation."""


class NavigationError(TimesnapError):
    """The page did not reach its ready state."""


class PageError(TimesnapError):
    """A command sent to a loaded page failed, e.g. after the page crashed."""


class CaptureError(TimesnapError):
    """One or more frames could not be captured or persisted.

    ``frames`` lists every frame number that was lost; it is empty when the
    failure cannot be tied to a frame.
    """

    def __init__(self, message: str, *, frame: int | None = None, frames: Sequence[int] = ()) -> None:
        super().__init__(message)
        self.frames = tuple(frames) if frames else ((frame,) if frame is not None else ())
        self.frame = self.frames[0] if self.frames else None


class HookError(TimesnapError):
    """A caller supplied page hook raised."""


class ClockRegressionError(TimesnapError, RuntimeError):
    """Virtual time was asked to move backwards."""
