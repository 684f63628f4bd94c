import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

from catchall.config import Settings

# Exposed so the capture route can stamp its generated id on every log line
req_id_var: ContextVar[str] = ContextVar("req_id", default="-")

_PROBE_PATHS = ("/healthz", "/readyz", "/metrics")


class JsonFormatter(logging.Formatter):
    def __init__(self, env: str = ""):
        super().__init__()
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "req_id": getattr(record, "req_id", req_id_var.get()),
            "level": record.levelname,
            "component": record.name,
            "msg": record.getMessage(),
        }
        if self.env:
            payload["env"] = self.env
        if hasattr(record, "meta"):
            payload["meta"] = record.meta
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except Exception:
            # Fallback to plain message if payload has unserialisable types
            return payload["msg"]


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.req_id = req_id_var.get()
        return True


class ProbeAccessFilter(logging.Filter):
    """Mute access log lines for health, readiness and metrics scrapes."""

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        # uvicorn.access passes (client, method, path, http_version, status)
        if isinstance(args, tuple) and len(args) >= 3 and isinstance(args[2], str):
            return not args[2].startswith(_PROBE_PATHS)
        msg = record.getMessage()
        return not any(f" {p}" in msg for p in _PROBE_PATHS)


def configure_logging(settings: Settings) -> None:
    """
    Call once at app startup.
    LOG_LEVEL controls verbosity; ENV=development switches to plain text on stdout.
    """
    level = getattr(logging, settings.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if settings.is_development:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter(env=settings.env))
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").addFilter(ProbeAccessFilter())

    # Reduce third-party verbosity unless LOG_LEVEL is DEBUG
    if level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("multipart").setLevel(logging.WARNING)
        logging.getLogger("python_multipart").setLevel(logging.WARNING)


__all__ = ["configure_logging", "req_id_var", "JsonFormatter", "RequestIdFilter"]
