"""
Tests for the ProductResolver batch resolution function.
"""

import pytest

from productloader.config import DEFAULT_SHEET_RANGE
from productloader.exceptions import BackendUnavailable, KeyNotFound, MalformedKey, MalformedRow
from productloader.keys import LoadKey, MembershipMatch, SearchQuery
from productloader.models import SearchResult
from productloader.resolver import ProductResolver, match_rows
from tests.mocks.backend import SAMPLE_ROWS, FakeTableBackend


def _key(**params) -> LoadKey:
    params.setdefault("currentPage", 0)
    params.setdefault("pageSize", 10)
    return LoadKey.from_params(params)


@pytest.fixture
def backend() -> FakeTableBackend:
    return FakeTableBackend()


@pytest.fixture
def resolver(backend: FakeTableBackend) -> ProductResolver:
    return ProductResolver(backend=backend, table_id="sheet-1")


@pytest.mark.asyncio
async def test_one_fetch_per_batch(resolver: ProductResolver, backend: FakeTableBackend) -> None:
    """Test that the table is fetched once whatever the number of keys."""
    keys = [_key(search="Sh"), _key(filter={"sku": {"eq": "S1"}}), _key(search="Shoe")]

    outcomes = await resolver(keys)

    assert len(outcomes) == 3
    assert backend.token_calls == 1
    assert backend.fetch_calls == [("sheet-1", DEFAULT_SHEET_RANGE)]


@pytest.mark.asyncio
async def test_search_returns_all_title_matches(resolver: ProductResolver) -> None:
    [outcome] = await resolver([_key(search="Sh", currentPage=2, pageSize=10)])

    assert isinstance(outcome, SearchResult)
    assert outcome.total == 2
    assert outcome.offset == 20
    assert outcome.limit == 10
    assert [product.sku for product in outcome.products] == ["S1", "S2"]


@pytest.mark.asyncio
async def test_search_is_case_sensitive(resolver: ProductResolver) -> None:
    [outcome] = await resolver([_key(search="sh")])

    assert isinstance(outcome, SearchResult)
    assert outcome.total == 0
    assert outcome.products == []


@pytest.mark.asyncio
async def test_exact_match_returns_single_record(resolver: ProductResolver) -> None:
    [outcome] = await resolver([_key(filter={"url_key": {"eq": "S2"}})])

    assert isinstance(outcome, SearchResult)
    assert outcome.total == 1
    assert outcome.products[0].sku == "S2"
    assert outcome.products[0].title == "Shoe"


@pytest.mark.asyncio
async def test_membership_match_keeps_table_order(resolver: ProductResolver) -> None:
    [outcome] = await resolver([_key(filter={"sku": {"in": ["S2", "S1", "S9"]}}, pageSize=5)])

    assert isinstance(outcome, SearchResult)
    assert outcome.total == 2
    assert outcome.limit == 5
    assert [product.sku for product in outcome.products] == ["S1", "S2"]


@pytest.mark.asyncio
async def test_failures_are_per_key_outcomes(resolver: ProductResolver) -> None:
    """Test that unknown and malformed keys fail alone, in position."""
    keys = [
        _key(filter={"sku": {"eq": "UNKNOWN"}}),
        _key(search="Shirt"),
        _key(),
    ]

    missing, found, malformed = await resolver(keys)

    assert isinstance(missing, KeyNotFound)
    assert missing.value == "UNKNOWN"
    assert isinstance(found, SearchResult)
    assert found.products[0].sku == "S1"
    assert isinstance(malformed, MalformedKey)


@pytest.mark.asyncio
async def test_bad_price_fails_only_keys_matching_the_row() -> None:
    backend = FakeTableBackend(rows=[*SAMPLE_ROWS, ["S3", "Sock", "", "free", "img3"]])
    resolver = ProductResolver(backend=backend, table_id="sheet-1")

    sock, shirt = await resolver([_key(search="Sock"), _key(search="Shirt")])

    assert isinstance(sock, MalformedRow)
    assert isinstance(shirt, SearchResult)


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["fail_token", "fail_fetch"])
async def test_backend_failure_fails_every_key(failure: str) -> None:
    backend = FakeTableBackend(**{failure: True})
    resolver = ProductResolver(backend=backend, table_id="sheet-1")

    outcomes = await resolver([_key(search="Sh"), _key(filter={"sku": {"eq": "S1"}})])

    assert len(outcomes) == 2
    assert all(isinstance(outcome, BackendUnavailable) for outcome in outcomes)


def test_match_rows_handles_short_rows() -> None:
    rows = [["S1"], ["S2", "Shoe"]]

    assert match_rows(query=SearchQuery(term="Sho"), rows=rows) == [["S2", "Shoe"]]
    assert match_rows(query=MembershipMatch(field="sku", values=("S1",)), rows=rows) == [["S1"]]
