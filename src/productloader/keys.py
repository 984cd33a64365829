"""
Load keys, their classification into queries, and cache key canonicalization.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from productloader.exceptions import MalformedKey

IDENTIFIER_FIELDS = ("sku", "url_key")


class EqOrIn(BaseModel):
    """
    Filter condition on an identifier field: ``{eq: str}`` or ``{in: [str]}``.

    Notes
    -----
    ``in`` is a Python keyword, so the field is stored as ``in_`` and
    serialized under its alias.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    eq: str | None = None
    in_: tuple[str, ...] | None = Field(default=None, alias="in")


class ProductFilter(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sku: EqOrIn | None = None
    url_key: EqOrIn | None = None


class LoadKey(BaseModel):
    """
    Immutable search parameters of one ``products`` request.

    Exactly one of ``search`` or ``filter`` is expected to be meaningful.
    This is a caller contract; ``to_query`` reports violations as
    ``MalformedKey``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    search: str | None = None
    filter: ProductFilter | None = None
    category_id: int | None = Field(default=None, alias="categoryId")
    current_page: int = Field(alias="currentPage")
    page_size: int = Field(alias="pageSize")

    @classmethod
    def from_params(cls, params: t.Mapping[str, t.Any]) -> LoadKey:
        """
        Validate raw dispatcher parameters into a key.

        Parameters
        ----------
        params : typing.Mapping[str, typing.Any]
            Parameters using the GraphQL argument names
            (``currentPage``, ``pageSize``...).

        Returns
        -------
        LoadKey
            Validated key.
        """
        return cls.model_validate(dict(params))

    @property
    def offset(self) -> int:
        return self.current_page * self.page_size

    def to_query(self) -> Query:
        """
        Classify the key into the query it describes.

        Returns
        -------
        Query
            ``SearchQuery`` when a search term is set, otherwise the first
            ``eq`` condition, otherwise the first ``in`` condition.

        Raises
        ------
        MalformedKey
            If the key carries neither a search term nor a recognized filter.
        """
        if self.search:
            return SearchQuery(term=self.search)
        if self.filter is not None:
            conditions = [
                (field_name, getattr(self.filter, field_name)) for field_name in IDENTIFIER_FIELDS
            ]
            for field_name, condition in conditions:
                if condition is not None and condition.eq is not None:
                    return ExactMatch(field=field_name, value=condition.eq)
            for field_name, condition in conditions:
                if condition is not None and condition.in_ is not None:
                    return MembershipMatch(field=field_name, values=condition.in_)
        raise MalformedKey(
            f"Key has neither a search term nor a sku/url_key filter: {canonicalize(self)}"
        )


@dataclass(frozen=True)
class SearchQuery:
    """Substring match of ``term`` against product titles."""

    term: str


@dataclass(frozen=True)
class ExactMatch:
    """Single product whose identifier equals ``value``."""

    field: str
    value: str


@dataclass(frozen=True)
class MembershipMatch:
    """Every product whose identifier is one of ``values``."""

    field: str
    values: tuple[str, ...]


Query = SearchQuery | ExactMatch | MembershipMatch


def canonicalize(key: LoadKey) -> str:
    """
    Serialize a key into its cache key.

    Parameters
    ----------
    key : LoadKey
        Key to serialize.

    Returns
    -------
    str
        Compact JSON using the GraphQL argument names, unset fields omitted,
        fields in declaration order. Dict key order of the raw parameters
        does not matter; order inside an ``in`` list does.
    """
    return key.model_dump_json(by_alias=True, exclude_none=True)
