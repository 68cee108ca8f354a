"""Structured logging via structlog.

Configures structlog once at process startup. Pipeline modules log through
`logging.getLogger(__name__)`; the stdlib bridge routes those records to
the same stream.

Renderer selection:
  debug=True:  `ConsoleRenderer` with colours for local runs.
  debug=False: `JSONRenderer` for the job substrate's log collector.

ContextVar injection:
  `run_id` and `step` are injected into every structlog line from
  ContextVars set by the pipeline, so log lines from concurrent runs in
  one collector can be told apart without threading IDs through calls.

Logs go to stderr; stdout is reserved for the CLI's result record.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

_run_id_var: ContextVar[str] = ContextVar("run_id", default="")
_step_var: ContextVar[str] = ContextVar("step", default="")


def get_run_id() -> str:
    """Return the current run ID, or empty string if not set."""
    return _run_id_var.get()


def get_step() -> str:
    """Return the pipeline step currently executing, or empty string."""
    return _step_var.get()


@contextmanager
def bind_run(run_id: str) -> Iterator[None]:
    token = _run_id_var.set(run_id)
    try:
        yield
    finally:
        _run_id_var.reset(token)


@contextmanager
def bind_step(step: str) -> Iterator[None]:
    token = _step_var.set(step)
    try:
        yield
    finally:
        _step_var.reset(token)


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: inject run_id and step from ContextVars."""
    run_id = get_run_id()
    step = get_step()
    if run_id:
        event_dict["run_id"] = run_id
    if step:
        event_dict["step"] = step
    return event_dict


def configure_structlog(debug: bool = False) -> None:
    """Configure structlog for the process lifetime.

    Calling multiple times is safe; the last call wins.
    """
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    # Bridge stdlib logging through the same processors so module loggers
    # (and httpx) emit structured lines carrying run_id and step.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.add_logger_name] + shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
