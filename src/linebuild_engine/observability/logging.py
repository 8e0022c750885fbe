"""Structured logging setup with JSON-lines output and correlation context.

Decision logs are emitted through ``structlog``; :func:`setup_structured_logging`
routes them into the same stdlib handlers so one run produces one JSON-lines file.
"""

from __future__ import annotations

import contextvars
import json
import logging
import math
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_DEFAULT_LOG_FILENAME: Final[str] = "linebuild.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "linebuild_engine"
_LOG_FORMATS: Final[frozenset[str]] = frozenset({"json", "text"})
_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_ACTIVE_HANDLES: list[StructuredLoggingHandle] = []

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "linebuild_observability_correlation", default=()
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str | None = Path("logs")
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    log_format: str = "json"
    log_filename: str = _DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False


class StructuredLoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        handlers: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._handlers = handlers
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        if self._is_shutdown:
            return
        for handler in self._handlers:
            handler.flush()
            self.logger.removeHandler(handler)
            handler.close()
        self._is_shutdown = True


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation = dict(self._base_context)
        correlation.update(get_correlation_context())
        for key, value in sorted(correlation.items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = extras
        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure logging from an ``[observability]`` config section and return the logger.

    ``log_dir`` overrides the section's ``log_dir``; an empty ``log_dir`` in the
    section disables the file sink and logs to stderr instead.
    """
    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    raw_format = cfg.get("log_format", "json")
    raw_dir: object = log_dir if log_dir is not None else cfg.get("log_dir", "logs")
    base_log_dir = raw_dir if isinstance(raw_dir, (Path, str)) and str(raw_dir) else None

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_log_dir,
            logger_name=logger_name,
            level=level,
            log_format=raw_format if isinstance(raw_format, str) else "json",
            log_to_stdout=base_log_dir is None,
        )
    )
    return handle.logger


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    run_id = _validate_text(config.run_id, "run_id")
    logger_name = _validate_text(config.logger_name, "logger_name")
    level = _parse_log_level(config.level)
    log_format = config.log_format.strip().lower()
    if log_format not in _LOG_FORMATS:
        raise ValueError(f"log_format must be one of {sorted(_LOG_FORMATS)}, got {log_format!r}")

    formatter: logging.Formatter
    if log_format == "json":
        formatter = _JsonLineFormatter(base_context={"run_id": run_id})
    else:
        formatter = logging.Formatter(_TEXT_FORMAT)

    handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if config.base_log_dir is not None:
        run_log_dir = Path(config.base_log_dir) / run_id
        run_log_dir.mkdir(parents=True, exist_ok=True)
        log_path = run_log_dir / _validate_log_filename(config.log_filename)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stdout:
        handlers.append(logging.StreamHandler())

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        handlers=tuple(handlers),
    )
    _ACTIVE_HANDLES.append(handle)
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Flush and close ``handle``, or every active handle when none is given."""
    targets = [handle] if handle is not None else list(_ACTIVE_HANDLES)
    for target in targets:
        target.shutdown()
        if target in _ACTIVE_HANDLES:
            _ACTIVE_HANDLES.remove(target)


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Set correlation fields (``None`` removes a field) and return a reset token."""
    state = get_correlation_context()
    for key, value in fields.items():
        key_name = _validate_text(key, "correlation key")
        if value is None:
            state.pop(key_name, None)
            continue
        state[key_name] = _validate_text(value, "correlation value")
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields (e.g. ``build_id``, ``job_id``)."""
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def _validate_text(value: str, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{label} must not be empty")
    return normalized


def _validate_log_filename(log_filename: str) -> str:
    normalized = _validate_text(log_filename, "log_filename")
    if Path(normalized).name != normalized:
        raise ValueError("log_filename must not include path separators")
    return normalized


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return normalized.astimezone(UTC).isoformat(timespec="microseconds").replace(
            "+00:00", "Z"
        )
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
