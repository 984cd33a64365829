from .context import LoaderContext as LoaderContext
from .context import active_loader as active_loader
from .context import get_active_loader as get_active_loader
from .core import BatchLoader as BatchLoader

__all__ = [
    "BatchLoader",
    "LoaderContext",
    "active_loader",
    "get_active_loader",
]
