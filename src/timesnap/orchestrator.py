from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .config import CaptureConfig, load_config
from .errors import TimesnapError
from .logs import configure_logging
from .scheduler import CaptureResult, CaptureScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionResult:
    config: CaptureConfig
    result: CaptureResult


class CaptureOrchestrator:
    """High-level runner that ties configuration loading with the scheduler."""

    def __init__(self, scheduler_factory: type[CaptureScheduler] = CaptureScheduler) -> None:
        self._scheduler_factory = scheduler_factory

    def execute(self, source: CaptureConfig | Path | Mapping[str, Any], **hooks: Any) -> ExecutionResult:
        config = source if isinstance(source, CaptureConfig) else load_config(source, **hooks)
        result = self._scheduler_factory().run(config)
        return ExecutionResult(config=config, result=result)


def timesnap(source: CaptureConfig | Path | Mapping[str, Any], **hooks: Any) -> CaptureResult | None:
    """Run a capture with logging configured from the options.

    Errors during the run are logged rather than raised; ``None`` signals a
    failed run. Invalid options still raise from ``load_config``.
    """

    config = source if isinstance(source, CaptureConfig) else load_config(source, **hooks)
    configure_logging(quiet=config.quiet, log_to_stderr=config.log_to_stderr)
    try:
        return CaptureOrchestrator().execute(config).result
    except TimesnapError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return None
    except Exception:
        logger.exception("Capture failed")
        return None
