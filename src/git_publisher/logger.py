import json
import logging
import logging.handlers
import os
import sys
from typing import Any

# Rotate the event log once it passes ~1 MB, keeping a single backup.
LOG_ROTATE_BYTES = 1_000_000
LOG_BACKUP_COUNT = 1


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for the structured event log.

    Produces one JSON object per record with fields: ts, level, logger, msg.
    Records emitted through ``log_event`` also carry ``event`` and
    ``fields``.  Exception info is included as "exc" when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            entry["event"] = event
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    *args: Any,
    **fields: Any,
) -> None:
    """Log *message* with a machine-readable event name and fields.

    Example:
        log_event(logger, logging.INFO, "batch_ok", "Committed %s",
                  sha, commit=sha, files=3)
    """
    logger.log(
        level, message, *args, extra={"event": event, "fields": fields}
    )


def _text_formatter(with_name: bool = False) -> logging.Formatter:
    fmt = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: INFO.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/git-publisher.ndjson
    """
    env_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []

    if mode == "mcp":
        # stdio transport owns stdout, so MCP mode writes the NDJSON
        # event log to a rotating file only.
        final_log_file = log_file or os.getenv(
            "LOG_FILE", "/tmp/git-publisher.ndjson"
        )
        file_handler = logging.handlers.RotatingFileHandler(
            final_log_file,
            mode="a",
            maxBytes=LOG_ROTATE_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        if debug_format == "json":
            stderr_handler.setFormatter(
                JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S")
            )
        else:
            stderr_handler.setFormatter(_text_formatter())
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            if debug_format == "json":
                file_handler.setFormatter(
                    JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S")
                )
            else:
                file_handler.setFormatter(_text_formatter(with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
