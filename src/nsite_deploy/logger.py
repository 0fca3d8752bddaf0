import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_THIRD_PARTY = ("urllib3", "requests")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for machine-readable deploy logs.

    Produces one JSON object per record with fields: ts, level, logger, msg.
    Exception info is added as "exc" when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(log_format: str, with_name: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    pattern = "[%(asctime)s] [%(levelname)s] "
    if with_name:
        pattern += "%(name)s "
    return logging.Formatter(pattern + "%(message)s", datefmt=_DATEFMT)


def setup_logging(
    debug: bool = False,
    log_file: str | None = None,
    log_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure root logging for a deploy run.

    Progress output belongs to the caller, so log records always go to
    stderr, plus an optional file.

    Args:
        debug: If True, forces DEBUG level.
        log_file: Also append records to this file.
        log_format: "text" (default) or "json".
        level: Level name from config; NSITE_LOG_LEVEL overrides it.

    Environment variables:
        NSITE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                         Default: INFO.
    """
    env_level = os.getenv("NSITE_LOG_LEVEL", level or "INFO").upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_make_formatter(log_format, with_name=False))
    handlers: list[logging.Handler] = [stderr_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(_make_formatter(log_format, with_name=True))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # HTTP client chatter only at DEBUG
    if log_level != logging.DEBUG:
        for name in _THIRD_PARTY:
            logging.getLogger(name).setLevel(logging.WARNING)
