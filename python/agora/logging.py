"""Structured logging configuration using structlog.

Every entry is one JSON object. Request- and task-scoped fields are held in
context vars and merged into each event by add_request_context:

- request_id: X-Request-ID of the current request (or the request that
  enqueued the current task)
- user_id: the resolved caller, once auth middleware has loaded the profile
- path / method: raw request path (never the query string) and HTTP method
- task_name / task_id: Celery task context

Usage:
    from agora.logging import configure_logging, get_logger

    configure_logging()  # once, at process start
    logger = get_logger(__name__)
    logger.info("post_created", post_id=str(post.id), content_chars=len(content))

Content never goes into log fields; see agora.services.redact.safe_kv.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)
task_name_var: ContextVar[str | None] = ContextVar("task_name", default=None)
task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)

_REQUEST_VARS = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "path": path_var,
    "method": method_var,
}
_TASK_VARS = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "task_name": task_name_var,
    "task_id": task_id_var,
}
_ALL_VARS = {**_REQUEST_VARS, **_TASK_VARS}

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "celery.app.trace")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: copy every set context var into the event."""
    for key, var in _ALL_VARS.items():
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one formatter on stdout.

    Args:
        json_format: JSON lines when True, the structlog console renderer otherwise.
        level: Root log level.
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Start the logging context for one HTTP request."""
    request_id_var.set(request_id)
    path_var.set(path)
    method_var.set(method)


def bind_caller(user_id: str | None) -> None:
    """Attach the resolved caller to the current request or task context."""
    user_id_var.set(user_id)


def clear_request_context() -> None:
    for var in _REQUEST_VARS.values():
        var.set(None)


def get_request_id() -> str | None:
    return request_id_var.get()


def configure_task_logging(
    request_id: str | None = None,
    task_name: str | None = None,
    task_id: str | None = None,
) -> None:
    """Start the logging context for one Celery task run.

    Args:
        request_id: X-Request-ID of the request that enqueued the task, if any.
        task_name: Registered task name.
        task_id: Celery task id (self.request.id).
    """
    request_id_var.set(request_id)
    task_name_var.set(task_name)
    task_id_var.set(task_id)


def clear_task_context() -> None:
    for var in _TASK_VARS.values():
        var.set(None)
