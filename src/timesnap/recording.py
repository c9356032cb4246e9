from __future__ import annotations

import base64
import binascii
import io
import json
from dataclasses import asdict, dataclass
from pathlib import Path

from PIL import Image

_FORMATS_BY_SUFFIX = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".webp": "WEBP",
    ".bmp": "BMP",
}


@dataclass(slots=True)
class CapturedFrame:
    frame: int
    time: float
    path: str
    strategy: str


def decode_data_url(data_url: str) -> bytes:
    """Return the payload of a base64 ``data:`` URL as produced by ``toDataURL``."""

    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        msg = "Expected a base64 data URL"
        raise ValueError(msg)
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        msg = "Malformed base64 payload in data URL"
        raise ValueError(msg) from exc


class FrameWriter:
    """Persist captured images under an output directory using a printf pattern."""

    def __init__(self, directory: Path, pattern: str = "%d.png", *, quality: int | None = None) -> None:
        self._directory = directory
        self._directory.mkdir(parents=True, exist_ok=True)
        self._pattern = pattern
        self._quality = quality

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def image_format(self) -> str:
        return _FORMATS_BY_SUFFIX.get(Path(self._pattern).suffix.lower(), "PNG")

    def path_for(self, frame: int) -> Path:
        return self._directory / (self._pattern % frame)

    def write(self, frame: int, data: bytes) -> Path:
        """Write encoded image bytes, re-encoding with Pillow when formats differ."""

        path = self.path_for(frame)
        path.parent.mkdir(parents=True, exist_ok=True)
        with Image.open(io.BytesIO(data)) as image:
            if image.format == self.image_format:
                path.write_bytes(data)
                return path
            converted = image
            if self.image_format == "JPEG" and image.mode not in {"RGB", "L"}:
                converted = image.convert("RGB")
            options = {}
            if self._quality is not None and self.image_format in {"JPEG", "WEBP"}:
                options["quality"] = self._quality
            converted.save(path, format=self.image_format, **options)
        return path


class FrameRegistry:
    """Maintain the list of frames persisted during a run."""

    def __init__(self, json_path: Path) -> None:
        self._json_path = json_path
        self._json_path.parent.mkdir(parents=True, exist_ok=True)
        self._records: list[CapturedFrame] = []

    @property
    def records(self) -> list[CapturedFrame]:
        return list(self._records)

    def add(self, frame: int, time: float, path: Path, strategy: str) -> CapturedFrame:
        record = CapturedFrame(frame=frame, time=time, path=str(path), strategy=strategy)
        self._records.append(record)
        return record

    def flush(self) -> None:
        payload = [asdict(frame) for frame in self._records]
        self._json_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
