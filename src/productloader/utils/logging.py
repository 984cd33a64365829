"""
structlog configuration for the command line and for embedding applications.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def setup_logging(verbose: bool = False) -> None:
    """
    Render loader events on stderr.

    Parameters
    ----------
    verbose : bool
        Emit every event from ``DEBUG`` up; otherwise only warnings and errors,
        so batch activity stays out of command output.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # batch_id and request fields
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


@contextmanager
def logging_context(**fields) -> Iterator[None]:
    """
    Bind context fields for the duration of the block; outer values win.
    """
    bound = structlog.contextvars.get_contextvars()
    new_fields = {name: value for name, value in fields.items() if name not in bound}
    if not new_fields:
        yield
        return
    with structlog.contextvars.bound_contextvars(**new_fields):
        yield
