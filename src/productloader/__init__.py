from .batching import BatchLoader as BatchLoader
from .batching import LoaderContext as LoaderContext
from .keys import LoadKey as LoadKey
from .keys import canonicalize as canonicalize
from .models import ProductRecord as ProductRecord
from .models import SearchResult as SearchResult
from .products import ProductsLoader as ProductsLoader
from .resolver import ProductResolver as ProductResolver

__all__ = [
    "BatchLoader",
    "LoaderContext",
    "LoadKey",
    "ProductRecord",
    "ProductResolver",
    "ProductsLoader",
    "SearchResult",
    "canonicalize",
]
