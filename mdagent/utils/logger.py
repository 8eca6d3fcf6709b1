"""
Logging for mdagent, built on loguru.

- a coloured stderr sink, plus optional rotating text and JSON-lines file sinks
- stdlib ``logging`` records (openai, httpx, aiohttp, ...) are forwarded into loguru
- ``log_context(phase=..., round=...)`` tags every record emitted inside the block
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger as loguru_logger


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() not in {"0", "false", "no", "off"}


DEFAULT_LEVEL = os.getenv("MDAGENT_LOG_LEVEL", "INFO")
DEFAULT_LOG_DIR = os.getenv("MDAGENT_LOG_DIR", "")
DEFAULT_ROTATION = "50 MB"
DEFAULT_RETENTION = "14 days"
NOISY_LIBRARIES = ("httpx", "httpcore", "openai", "asyncio", "aiohttp")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> | "
    "<level>{message}</level> {extra[context_str]}"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[logger_name]}:{line} | {message} {extra[context_str]}"
)

_context: ContextVar[Dict[str, Any]] = ContextVar("mdagent_log_context", default={})
_config: Optional["LoggerConfig"] = None


@dataclass(frozen=True)
class LoggerConfig:
    level: str = DEFAULT_LEVEL
    # None: console only
    log_dir: Optional[Path] = Path(DEFAULT_LOG_DIR) if DEFAULT_LOG_DIR else None
    log_file: str = "mdagent.log"
    json_file: str = "mdagent.jsonl"
    rotation: str = DEFAULT_ROTATION
    retention: str = DEFAULT_RETENTION
    enable_json: bool = _env_flag("MDAGENT_LOG_JSON", False)
    colorize: bool = _env_flag("MDAGENT_LOG_COLOR", True)
    quiet_libs: List[str] = field(default_factory=lambda: list(NOISY_LIBRARIES))
    quiet_level: str = "WARNING"


class BoundLogger:
    """
    Thin wrapper over a bound loguru logger that accepts stdlib-style calls:
    ``log.info("round %s of %s", n, total)`` and ``log.warning("...", exc_info=True)``.
    """

    __slots__ = ("_logger",)

    def __init__(self, bound: Any) -> None:
        self._logger = bound

    @staticmethod
    def _render(message: Any, args: tuple[Any, ...]) -> str:
        if not args:
            return str(message)
        try:
            return str(message) % args
        except (TypeError, ValueError):
            return " ".join([str(message), *(str(arg) for arg in args)])

    def _log(self, level: str, message: Any, args: tuple[Any, ...], exc_info: Any) -> None:
        target = self._logger.opt(depth=2, exception=exc_info or None)
        target.log(level, self._render(message, args))

    def debug(self, message: Any, *args: Any, exc_info: Any = None) -> None:
        self._log("DEBUG", message, args, exc_info)

    def info(self, message: Any, *args: Any, exc_info: Any = None) -> None:
        self._log("INFO", message, args, exc_info)

    def warning(self, message: Any, *args: Any, exc_info: Any = None) -> None:
        self._log("WARNING", message, args, exc_info)

    def error(self, message: Any, *args: Any, exc_info: Any = None) -> None:
        self._log("ERROR", message, args, exc_info)


class _InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        target = loguru_logger.bind(logger_name=record.name)
        target.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _patch_record(record: Dict[str, Any]) -> None:
    context = _context.get()
    extra = record["extra"]
    extra.setdefault("context", dict(context))
    extra.setdefault("context_str", " ".join(f"{k}={v}" for k, v in context.items()))
    extra.setdefault("logger_name", record.get("name") or "mdagent")


def setup_logger(config: Optional[LoggerConfig] = None, **overrides: Any) -> BoundLogger:
    """
    (Re)install all sinks. ``overrides`` replace fields of ``config`` (or of the last applied
    configuration); ``None`` values are ignored.
    """
    global _config

    cfg = config or _config or LoggerConfig()
    changes = {k: v for k, v in overrides.items() if v is not None}
    if "log_dir" in overrides and not overrides["log_dir"]:
        changes["log_dir"] = None
    if changes.get("log_dir") is not None:
        changes["log_dir"] = Path(changes["log_dir"])
    cfg = replace(cfg, **changes)
    _config = cfg
    level = str(cfg.level).upper()

    loguru_logger.remove()
    loguru_logger.configure(patcher=_patch_record)
    loguru_logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=cfg.colorize)
    if cfg.log_dir is not None:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
        loguru_logger.add(
            cfg.log_dir / cfg.log_file,
            level=level,
            format=FILE_FORMAT,
            rotation=cfg.rotation,
            retention=cfg.retention,
            encoding="utf-8",
        )
        if cfg.enable_json:
            loguru_logger.add(
                cfg.log_dir / cfg.json_file,
                level=level,
                rotation=cfg.rotation,
                retention=cfg.retention,
                encoding="utf-8",
                serialize=True,
            )

    logging.basicConfig(
        handlers=[_InterceptHandler()],
        level=getattr(logging, level, logging.INFO),
        force=True,
    )
    for name in cfg.quiet_libs:
        logging.getLogger(name).setLevel(str(cfg.quiet_level).upper())
    return BoundLogger(loguru_logger.bind(logger_name="mdagent"))


def apply_settings(settings: Any) -> None:
    """Re-apply logging from a :class:`mdagent.config.Settings` instance."""
    setup_logger(
        level=settings.log_level,
        log_dir=settings.log_dir or "",
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        enable_json=settings.log_json,
    )


def set_log_level(level: str) -> None:
    setup_logger(level=level)


def bind_context(**kwargs: Any) -> None:
    """Add fields to the logging context for the rest of the current task."""
    _context.set({**_context.get(), **kwargs})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    token = _context.set({**_context.get(), **kwargs})
    try:
        yield
    finally:
        _context.reset(token)


def get_logger(name: str) -> BoundLogger:
    return BoundLogger(loguru_logger.bind(logger_name=name))


logger = setup_logger()
