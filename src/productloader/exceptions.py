"""
Productloader-specific runtime exceptions.

Resolution failures are carried as values through the batch pipeline and
never raised to ``load`` callers; only ``LoaderClosed`` is raised.
"""

from __future__ import annotations


class LoaderError(Exception):
    """Base class for every failure the loader knows how to describe."""


class BackendUnavailable(LoaderError):
    """
    Token acquisition or table fetch failed.

    Notes
    -----
    Affects every key of the batch that triggered the fetch.
    """


class KeyNotFound(LoaderError):
    """An exact-match key matched no row."""

    def __init__(self, *, field: str, value: str) -> None:
        super().__init__(f"No record for {field}={value!r}")
        self.field = field
        self.value = value


class MalformedKey(LoaderError):
    """A load key with neither a search term nor a recognized filter shape."""


class MalformedRow(LoaderError):
    """A matched table row could not be mapped to a product record."""


class LoaderClosed(RuntimeError):
    """Raised when ``load`` is called on a loader that has been closed."""


def describe_error(*, error: BaseException) -> str:
    """
    Build a one-line description of an error for log events.

    Parameters
    ----------
    error : BaseException
        Error to describe.

    Returns
    -------
    str
        ``"ErrorType: message"``.
    """
    return f"{type(error).__name__}: {error}"
