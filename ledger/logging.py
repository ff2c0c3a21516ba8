import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict

from loguru import logger


_RESERVED_LOG_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (uvicorn, fastapi) into loguru."""

    def emit(self, record: LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS
        }
        message = record.getMessage()

        bound_logger = logger.bind(**extra) if extra else logger
        bound_logger.opt(depth=6, exception=record.exc_info).log(level, message)


def serialize_record(record: Dict[str, Any], metadata: Dict[str, Any]) -> str:
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        "service": metadata.get("service_name", "unknown"),
        "environment": metadata.get("environment", "unknown"),
        "version": metadata.get("version", "unknown"),
    }
    if record["extra"]:
        payload.update(record["extra"])
    return json.dumps(payload, default=str)


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install a JSON loguru sink and bridge stdlib logging into it."""

    logger.remove()
    metadata = {"service_name": service_name, "environment": environment, "version": version}

    def _sink(message) -> None:
        sys.stdout.write(serialize_record(message.record, metadata) + "\n")

    logger.add(_sink, level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
