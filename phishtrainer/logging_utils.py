import json
import logging
import sys

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Context passed through `extra=` by the play and generation flows
CONTEXT_FIELDS = ("player_id", "email_id", "provider")

# Chatty third-party loggers, only let through in debug mode
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "uvicorn.access")

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying player/email/provider context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log[field] = value
        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def _resolve_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(DEFAULT_FORMAT, DATE_FORMAT)


def configure_logging(level: str = "INFO", log_format: str = "plain",
                      debug: bool = False, force: bool = False) -> None:
    """
    Install a single stdout handler for the service.

    Debug mode drops the root level to DEBUG and lets SQLAlchemy echo its
    statements; otherwise the noisy library loggers stay at WARNING.
    """
    global _configured
    if _configured and not force:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_resolve_formatter(log_format))

    root_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=root_level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)
    _configured = True
