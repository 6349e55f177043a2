"""Structured JSON logging for sync jobs"""

import json
import logging
import logging.config
import os
import uuid
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else arrived through extra={...}
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def setup_logging(level: str | None = None) -> str:
    """
    Configures JSON structured logging on stdout.
    Returns a job_id for correlation across log entries.
    """
    job_id = os.getenv("JOB_ID") or str(uuid.uuid4())[:8]

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "ghmirror_workers.logging_config.JsonFormatter",
                "job_id": job_id,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level or os.getenv("LOG_LEVEL", "INFO"),
            "handlers": ["console"],
        },
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }

    logging.config.dictConfig(config)
    return job_id


class JsonFormatter(logging.Formatter):
    """
    Outputs log records as one JSON object per line.
    Includes job_id, timestamp, severity, message and every extra field.
    """

    def __init__(self, job_id: str = "", *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.job_id = job_id

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "job_id": self.job_id,
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_entry:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)
