from __future__ import annotations

import logging
import sys

import structlog

from .context import get_request_id


def _add_request_id(_: logging.Logger, __: str, event_dict: dict) -> dict:
    rid = get_request_id()
    if rid:
        event_dict["request_id"] = rid
    return event_dict


_CONFIGURED = False


def configure_logging(*, level: str | int = "INFO") -> None:
    """
    Configure stdlib logging + structlog to output structured JSON to stdout.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(str(level).upper() if isinstance(level, str) else level)

    # Make uvicorn loggers flow through root so formatting is consistent.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(name)
        log.handlers = []
        log.propagate = True

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_request_id,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


class TelemetryLogFilter(logging.Filter):
    """
    Enriches stdlib records before they reach the OpenTelemetry log handler.

    - include_formatted_message: the rendered message is added as `formatted_message`
      (structlog hands the handler an event dict, not a string).
    - include_scopes: values bound with `structlog.contextvars.bind_contextvars`
      plus the request id are copied onto the record as `scope.<key>`.

    The OTel handler turns non-reserved record attributes into log attributes.
    """

    def __init__(self, *, include_formatted_message: bool, include_scopes: bool):
        super().__init__()
        self.include_formatted_message = include_formatted_message
        self.include_scopes = include_scopes

    def filter(self, record: logging.LogRecord) -> bool:
        if self.include_formatted_message:
            msg = record.msg
            if isinstance(msg, dict):
                record.formatted_message = str(msg.get("event", ""))
            else:
                record.formatted_message = record.getMessage()
        if self.include_scopes:
            scopes = dict(structlog.contextvars.get_contextvars())
            rid = get_request_id()
            if rid:
                scopes.setdefault("request_id", rid)
            for k, v in scopes.items():
                if v is None:
                    continue
                setattr(record, f"scope.{k}", v if isinstance(v, (str, bool, int, float)) else str(v))
        return True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
