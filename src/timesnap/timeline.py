from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Sequence

FrameNumToTime = Callable[[int, int], float]

# An early animation tick lets content that only initialises inside its first
# requestAnimationFrame callback run before a large first jump.
ANIMATION_GAP_THRESHOLD_MS = 100.0
EARLY_ANIMATION_FRAME_MS = 20.0


class MarkerKind(str, Enum):
    CAPTURE = "capture"
    ANIMATE_ONLY = "animate-only"


@dataclass(slots=True, frozen=True)
class Marker:
    """An instruction to advance virtual time and optionally capture."""

    time: float
    kind: MarkerKind
    sequence: int
    frame: int = 0
    total_frames: int = 0

    @property
    def is_capture(self) -> bool:
        return self.kind is MarkerKind.CAPTURE

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.time, self.sequence)


class CaptureTimeline:
    """Immutable, ordered sequence of markers for one recording run."""

    def __init__(self, markers: Sequence[Marker]) -> None:
        self._markers = tuple(sorted(markers, key=lambda marker: marker.sort_key))

    def __iter__(self) -> Iterator[Marker]:
        return iter(self._markers)

    def __len__(self) -> int:
        return len(self._markers)

    def __getitem__(self, index: int) -> Marker:
        return self._markers[index]

    @property
    def markers(self) -> tuple[Marker, ...]:
        return self._markers

    @property
    def captures(self) -> tuple[Marker, ...]:
        return tuple(marker for marker in self._markers if marker.is_capture)

    @property
    def capture_times(self) -> list[float]:
        return [marker.time for marker in self.captures]

    @property
    def animate_only_times(self) -> list[float]:
        return [marker.time for marker in self._markers if not marker.is_capture]

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"CaptureTimeline(markers={len(self._markers)}, captures={len(self.captures)})"


class _MarkerFactory:
    def __init__(self) -> None:
        self._markers: list[Marker] = []
        self._sequence = 0

    def add(
        self,
        time: float,
        kind: MarkerKind,
        *,
        frame: int = 0,
        total_frames: int = 0,
    ) -> Marker:
        marker = Marker(
            time=time,
            kind=kind,
            sequence=self._sequence,
            frame=frame,
            total_frames=total_frames,
        )
        self._sequence += 1
        self._markers.append(marker)
        return marker

    @property
    def markers(self) -> list[Marker]:
        return self._markers


def default_frame_num_to_time(fps: float) -> FrameNumToTime:
    frame_duration = 1000.0 / fps

    def frame_num_to_time(frame: int, total_frames: int) -> float:
        return (frame - 1) * frame_duration

    return frame_num_to_time


def build_timeline(
    frames_to_capture: int,
    frame_num_to_time: FrameNumToTime,
    *,
    delay_ms: float = 0.0,
    priming_offset_ms: float = 0.0,
    maximum_animation_frame_duration: float | None = None,
) -> CaptureTimeline:
    """Compute the ordered markers for a run.

    ``delay_ms`` is the configured start offset and applies to capture
    markers only. ``priming_offset_ms`` is the virtual time already consumed
    while waiting for the stop-condition selector; every marker is shifted by
    it so the run never asks the clock to move backwards.
    """

    if frames_to_capture < 0:
        msg = "frames_to_capture must not be negative"
        raise ValueError(msg)
    if maximum_animation_frame_duration is not None and maximum_animation_frame_duration <= 0:
        msg = "maximum_animation_frame_duration must be positive"
        raise ValueError(msg)

    factory = _MarkerFactory()
    capture_times: list[float] = []
    for frame in range(1, frames_to_capture + 1):
        offset = delay_ms + frame_num_to_time(frame, frames_to_capture)
        if offset < 0:
            msg = f"Frame {frame} maps to negative time {offset}"
            raise ValueError(msg)
        factory.add(
            priming_offset_ms + offset,
            MarkerKind.CAPTURE,
            frame=frame,
            total_frames=frames_to_capture,
        )
        capture_times.append(offset)

    if capture_times and capture_times[0] > ANIMATION_GAP_THRESHOLD_MS:
        factory.add(priming_offset_ms + EARLY_ANIMATION_FRAME_MS, MarkerKind.ANIMATE_ONLY)

    if maximum_animation_frame_duration:
        last_time = 0.0
        for time in capture_times:
            gap = time - last_time
            steps = math.ceil(gap / maximum_animation_frame_duration)
            for step in range(1, steps):
                factory.add(
                    priming_offset_ms + last_time + step * gap / steps,
                    MarkerKind.ANIMATE_ONLY,
                )
            last_time = time

    return CaptureTimeline(factory.markers)
