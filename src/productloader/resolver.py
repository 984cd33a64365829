"""
Batch resolution of product load keys against the backing sheet.
"""

from __future__ import annotations

import typing as t

import structlog

from productloader.backend import Row, TableBackend
from productloader.config import DEFAULT_SHEET_RANGE
from productloader.exceptions import (
    BackendUnavailable,
    KeyNotFound,
    LoaderError,
    describe_error,
)
from productloader.keys import (
    ExactMatch,
    LoadKey,
    MembershipMatch,
    Query,
    SearchQuery,
    canonicalize,
)
from productloader.models import SKU_COLUMN, TITLE_COLUMN, ProductRecord, SearchResult

log = structlog.get_logger(__name__)

Outcome = SearchResult | LoaderError


def _cell(row: Row, index: int) -> str:
    return row[index] if index < len(row) else ""


def match_rows(*, query: Query, rows: t.Sequence[Row]) -> list[Row]:
    """
    Select the rows a query matches, in table order.

    Parameters
    ----------
    query : Query
        Classified load key.
    rows : typing.Sequence[Row]
        Whole fetched table.

    Returns
    -------
    list[Row]
        Matching rows. An exact match returns exactly one row.

    Raises
    ------
    KeyNotFound
        If an exact match finds no row.
    """
    match query:
        case SearchQuery(term=term):
            return [row for row in rows if term in _cell(row, TITLE_COLUMN)]
        case ExactMatch(field=field, value=value):
            for row in rows:
                if _cell(row, SKU_COLUMN) == value:
                    return [row]
            raise KeyNotFound(field=field, value=value)
        case MembershipMatch(values=values):
            wanted = set(values)
            return [row for row in rows if _cell(row, SKU_COLUMN) in wanted]


class ProductResolver:
    """
    Turn a batch of load keys into positionally aligned outcomes.

    One credential and one table fetch are made per call, whatever the number
    of keys; every key is then matched in memory.

    Parameters
    ----------
    backend : TableBackend
        Source of credentials and table rows.
    table_id : str
        Spreadsheet identifier.
    table_range : str
        Range fetched on every call.
    """

    def __init__(
        self,
        backend: TableBackend,
        table_id: str,
        table_range: str = DEFAULT_SHEET_RANGE,
    ) -> None:
        self._backend = backend
        self._table_id = table_id
        self._table_range = table_range

    async def __call__(self, keys: list[LoadKey]) -> list[Outcome]:
        """
        Resolve every key of a batch.

        Parameters
        ----------
        keys : list[LoadKey]
            Unique keys of the batch.

        Returns
        -------
        list[Outcome]
            One ``SearchResult`` or ``LoaderError`` per key, in key order.
            A backend failure is returned as the outcome of every key.
        """
        log.info(event="Resolving product keys", key_count=len(keys), table_id=self._table_id)
        try:
            credential = await self._backend.acquire_token()
            rows = await self._backend.fetch_table(credential, self._table_id, self._table_range)
        except BackendUnavailable as error:
            log.error(
                event="Backend unavailable, failing batch",
                key_count=len(keys),
                error=describe_error(error=error),
            )
            return [error for _ in keys]
        return [self.resolve_key(key=key, rows=rows) for key in keys]

    def resolve_key(self, *, key: LoadKey, rows: t.Sequence[Row]) -> Outcome:
        """
        Resolve one key against an already fetched table.

        Parameters
        ----------
        key : LoadKey
            Key to resolve.
        rows : typing.Sequence[Row]
            Fetched table.

        Returns
        -------
        Outcome
            The search result, or the error that prevented it.
        """
        log.debug(event="Performing a search", key=canonicalize(key))
        try:
            matches = match_rows(query=key.to_query(), rows=rows)
            products = [ProductRecord.from_row(row) for row in matches]
        except LoaderError as error:
            log.warning(
                event="Failed loading products",
                key=canonicalize(key),
                error=describe_error(error=error),
            )
            return error
        return SearchResult(
            total=len(products),
            offset=key.offset,
            limit=key.page_size,
            products=products,
        )
