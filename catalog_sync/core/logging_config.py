"""Structured JSON logging configuration."""

import contextvars
import logging

from pythonjsonlogger.json import JsonFormatter

job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="")


class JobIdFilter(logging.Filter):
    """Inject the id of the sync job being processed into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = job_id_var.get("")  # type: ignore[attr-defined]
        return True


def setup_logging(*, debug: bool = False) -> None:
    """Configure root logger with JSON formatter and job-id filter."""
    handler = logging.StreamHandler()
    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(job_id)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler.setFormatter(formatter)
    handler.addFilter(JobIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # httpx logs every request at INFO; per-item fetches would drown the job logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
