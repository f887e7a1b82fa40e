from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import sys

from tenantdesk.core.config import get_settings


_HANDLER_NAME = "tenantdesk-stdout"
_CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    # Flatten records into single-line JSON for log aggregation.
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    # Attach one stdout handler to the package logger; repeated app creation is a no-op.
    settings = get_settings()
    package_logger = logging.getLogger("tenantdesk")
    package_logger.setLevel(settings.log_level.upper())
    if any(handler.get_name() == _HANDLER_NAME for handler in package_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    if settings.log_format.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    package_logger.addHandler(handler)
