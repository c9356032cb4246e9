from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import jsonschema

from .config import load_config
from .errors import TimesnapError
from .logs import configure_logging
from .scheduler import CaptureScheduler

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timesnap",
        description="Capture frames of a web page against a virtual, deterministic clock.",
    )
    parser.add_argument("url", nargs="?", help="Page to capture: a local path or a full URL.")
    parser.add_argument("--config", type=Path, help="JSON file with capture options.")
    parser.add_argument("-o", "--output-dir", dest="outputDirectory", help="Directory for captured frames.")
    parser.add_argument("--output-pattern", dest="outputPattern", help="printf-style frame file name, e.g. %%04d.png.")
    parser.add_argument("-R", "--fps", type=float, dest="fps", help="Frames per virtual second.")
    parser.add_argument("-d", "--duration", type=float, dest="duration", help="Virtual seconds to capture.")
    parser.add_argument("--frames", type=int, dest="frames", help="Number of frames to capture.")
    parser.add_argument("-S", "--start", type=float, dest="start", help="Virtual seconds to skip before the first frame.")
    parser.add_argument("--start-delay", type=float, dest="startDelay", help="Real seconds to wait after load.")
    parser.add_argument(
        "--max-animation-frame-duration",
        type=float,
        dest="maximumAnimationFrameDuration",
        help="Largest virtual ms step the page may see between animation frames.",
    )
    parser.add_argument(
        "--canvas-capture-mode",
        nargs="?",
        const=True,
        dest="canvasCaptureMode",
        help="Capture a canvas instead of the page: png, jpeg, or immediate[:selector].",
    )
    parser.add_argument("--selector", dest="selector", help="Element to clip to, or canvas to read.")
    parser.add_argument(
        "-U",
        "--unrandomize",
        nargs="?",
        const="true",
        dest="unrandomize",
        help="Seed Math.random: no value for the default seed, an integer, four comma separated integers, or random-seed.",
    )
    parser.add_argument("--viewport", dest="viewport", help="Viewport as WIDTH,HEIGHT; either may be empty.")
    parser.add_argument(
        "--capture-while-selector-exists",
        dest="captureWhileSelectorExists",
        help="Prime until the selector appears and stop once it disappears.",
    )
    parser.add_argument("--screenshot-type", choices=["png", "jpeg"], dest="screenshotType")
    parser.add_argument("-q", "--screenshot-quality", type=int, dest="screenshotQuality")
    parser.add_argument("--transparent-background", action="store_true", default=None, dest="transparentBackground")
    parser.add_argument("--executable-path", dest="executablePath")
    parser.add_argument("--remote-url", dest="remoteUrl", help="Connect to a running browser over CDP.")
    parser.add_argument("--launch-arg", action="append", dest="launchArguments", help="Extra browser argument.")
    parser.add_argument("--no-headless", action="store_false", default=None, dest="headless")
    parser.add_argument("--quiet", action="store_true", default=None, dest="quiet")
    parser.add_argument("--stderr", action="store_true", default=None, dest="logToStdErr")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log scheduler transitions and clock details.")
    return parser


def parse_unrandomize(value: str) -> Any:
    lowered = value.strip().lower()
    if lowered in {"true", ""}:
        return True
    if lowered == "false":
        return False
    if lowered == "random-seed":
        return "random-seed"
    parts = [part for part in lowered.split(",") if part]
    if len(parts) == 1:
        return int(parts[0])
    return [int(part) for part in parts]


def parse_viewport(value: str) -> dict[str, int]:
    width, _, height = value.partition(",")
    viewport: dict[str, int] = {}
    if width.strip():
        viewport["width"] = int(width)
    if height.strip():
        viewport["height"] = int(height)
    return viewport


def options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if args.config is not None:
        options.update(json.loads(args.config.read_text(encoding="utf-8")))
    skipped = {"config", "verbose"}
    for key, value in vars(args).items():
        if key in skipped or value is None:
            continue
        options[key] = value
    if args.unrandomize is not None:
        options["unrandomize"] = parse_unrandomize(args.unrandomize)
    if args.viewport is not None:
        options["viewport"] = parse_viewport(args.viewport)
    return options


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        options = options_from_args(args)
        config = load_config(options)
    except (ValueError, OSError, jsonschema.ValidationError) as exc:
        parser.error(str(exc))

    configure_logging(quiet=config.quiet, log_to_stderr=config.log_to_stderr, verbose=args.verbose)
    try:
        result = CaptureScheduler().run(config)
    except TimesnapError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    except Exception:
        logger.exception("Capture failed")
        return 1

    logger.info("Captured %d frames into %s", len(result.frames), result.manifest_path.parent)
    return 0 if not result.failed_frames else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
