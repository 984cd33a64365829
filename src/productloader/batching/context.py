"""
Request scope for a loader: activates it for the current task and closes it on exit.
"""

import contextvars
import typing as t

import structlog

log = structlog.get_logger(__name__)

T = t.TypeVar("T", bound="Closeable")

# ContextVar holding the loader of the current request
active_loader: contextvars.ContextVar[t.Any] = contextvars.ContextVar("active_loader", default=None)


class Closeable(t.Protocol):
    async def close(self) -> None: ...


def get_active_loader() -> t.Any:
    """
    Return the loader activated by the enclosing ``LoaderContext``.

    Returns
    -------
    typing.Any
        The active loader.

    Raises
    ------
    LookupError
        If no loader is active in the current context.
    """
    loader = active_loader.get()
    if loader is None:
        raise LookupError("No loader is active in this context")
    return loader


class LoaderContext(t.Generic[T]):
    """
    Async context manager that scopes a loader to one request.

    Parameters
    ----------
    loader : T
        Loader activated for the duration of the context manager.
    """

    def __init__(self, loader: T) -> None:
        self._self_loader = loader
        self._self_context_token: contextvars.Token[t.Any] | None = None

    async def __aenter__(self) -> T:
        """
        Activate the loader.

        Returns
        -------
        T
            The scoped loader.
        """
        self._self_context_token = active_loader.set(self._self_loader)
        return self._self_loader

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: t.Any,
    ) -> None:
        """
        Deactivate the loader and resolve its outstanding keys.

        Parameters
        ----------
        exc_type : type[BaseException] | None
            Exception type, if any.
        exc_val : BaseException | None
            Exception value, if any.
        exc_tb : typing.Any
            Exception traceback, if any.
        """
        if self._self_context_token is not None:
            active_loader.reset(self._self_context_token)
            self._self_context_token = None
        await self._self_loader.close()
        log.debug(event="Loader scope exited", error=exc_type.__name__ if exc_type else None)
