"""
Caller-facing products loader: one instance per logical request.
"""

from __future__ import annotations

import asyncio
import typing as t

import structlog
from pydantic import ValidationError

from productloader.backend import SheetsBackend, TableBackend
from productloader.batching.core import BatchLoader
from productloader.config import LoaderSettings
from productloader.keys import LoadKey, canonicalize
from productloader.models import SearchResult
from productloader.resolver import ProductResolver

log = structlog.get_logger(__name__)

KeyLike = LoadKey | t.Mapping[str, t.Any]


class ProductsLoader:
    """
    Batch, deduplicate and cache product searches against the backing sheet.

    Parameters
    ----------
    action_parameters : typing.Mapping[str, typing.Any] | None, optional
        Parameters of the invoking action; ``SPREADSHEET`` selects the table.
    backend : TableBackend | None, optional
        Backing source; defaults to a ``SheetsBackend`` built from settings.
    settings : LoaderSettings | None, optional
        Explicit settings, taking precedence over ``action_parameters``.

    Examples
    --------
    >>> loader = ProductsLoader({"SPREADSHEET": "sheet-id"})
    >>> result = await loader.load({"search": "Shirt", "currentPage": 0, "pageSize": 10})
    """

    def __init__(
        self,
        action_parameters: t.Mapping[str, t.Any] | None = None,
        *,
        backend: TableBackend | None = None,
        settings: LoaderSettings | None = None,
    ) -> None:
        self.settings = settings or LoaderSettings.from_action_parameters(action_parameters)
        self.backend = backend or SheetsBackend(settings=self.settings)
        self.resolver = ProductResolver(
            backend=self.backend,
            table_id=self.settings.spreadsheet,
            table_range=self.settings.sheet_range,
        )
        self.loader: BatchLoader[LoadKey, SearchResult] = BatchLoader(
            self.resolver,
            canonicalize,
            max_batch_size=self.settings.max_batch_size,
            cache_ttl_seconds=self.settings.cache_ttl_seconds,
        )

    @staticmethod
    def _coerce_key(key: KeyLike) -> LoadKey | None:
        if isinstance(key, LoadKey):
            return key
        try:
            return LoadKey.from_params(key)
        except ValidationError as error:
            log.warning(event="Rejected malformed load key", errors=error.error_count())
            return None

    async def load(self, key: KeyLike) -> SearchResult | None:
        """
        Load the products matching one key.

        Parameters
        ----------
        key : LoadKey | typing.Mapping[str, typing.Any]
            Key, or raw parameters validated into one.

        Returns
        -------
        SearchResult | None
            Matching products, or ``None`` when no result is available
            (backend failure, unknown identifier, malformed key).
        """
        load_key = self._coerce_key(key)
        if load_key is None:
            return None
        return await self.loader.load(load_key)

    async def load_many(self, keys: t.Iterable[KeyLike]) -> list[SearchResult | None]:
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def prime(self, key: KeyLike, value: SearchResult, *, force: bool = False) -> None:
        load_key = self._coerce_key(key)
        if load_key is not None:
            self.loader.prime(load_key, value, force=force)

    def clear(self, key: KeyLike) -> None:
        load_key = self._coerce_key(key)
        if load_key is not None:
            self.loader.clear(load_key)

    def clear_all(self) -> None:
        self.loader.clear_all()

    async def flush(self) -> None:
        await self.loader.flush()

    async def close(self) -> None:
        await self.loader.close()

