# pagebot/infra/logging_config.py
"""
Logging setup: JSON lines in production, colored single lines in dev.

Per-event context (sender, event kind, request id) travels as ``extra``
fields on the record; LogContext attaches it. Sender ids are masked by the
formatters so raw page-scoped ids never reach the log sink.
"""
import json
import logging
import sys
from datetime import datetime, timezone

# Record attributes rendered as context, in display order
CONTEXT_FIELDS = ("sender_id", "event_kind", "request_id")

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiohttp.access": logging.WARNING,
    "asyncpg": logging.WARNING,
}


def mask_sender_id(sender_id: str | None) -> str:
    """Keep the first 4 and last 2 characters of a page-scoped id."""
    if not sender_id:
        return "***"
    sender_id = str(sender_id)
    if len(sender_id) <= 6:
        return "***"
    return f"{sender_id[:4]}***{sender_id[-2:]}"


def _record_context(record: logging.LogRecord) -> dict:
    context = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is None:
            continue
        context[name] = mask_sender_id(value) if name == "sender_id" else value
    return context


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(_record_context(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        stamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")

        labels = {"sender_id": "sender", "event_kind": "event", "request_id": "req"}
        context = " ".join(f"{labels[k]}={v}" for k, v in _record_context(record).items())
        context = f" [{context}]" if context else ""

        line = f"{color}[{stamp}] {record.levelname:8}{self.RESET} {record.name}{context} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Replace the root handlers with a single stdout handler.

    Args:
        level: root log level name
        use_json: JSON lines (production) instead of the console format
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Logger wrapper that stamps every record with the same context fields."""

    def __init__(
            self,
            logger: logging.Logger,
            sender_id: str | None = None,
            event_kind: str | None = None,
            request_id: str | None = None,
    ):
        self.logger = logger
        fields = {"sender_id": sender_id, "event_kind": event_kind, "request_id": request_id}
        self.context = {k: v for k, v in fields.items() if v is not None}

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        extra.update(self.context)
        self.logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)
