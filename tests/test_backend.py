"""
Tests for the Sheets values API backend.
"""

import httpx
import pytest
import respx

from productloader.backend import Credential, SheetsBackend
from productloader.config import LoaderSettings
from productloader.exceptions import BackendUnavailable
from productloader.models import ProductRecord

BASE_URL = "https://sheets.test"
TOKEN_URL = "https://oauth.test/token"
VALUES_URL = f"{BASE_URL}/v4/spreadsheets/sheet-1/values/"


def _settings(**overrides) -> LoaderSettings:
    values = {
        "SPREADSHEET": "sheet-1",
        "SHEETS_BASE_URL": BASE_URL,
        "TOKEN_URL": TOKEN_URL,
    }
    values.update(overrides)
    return LoaderSettings.model_validate(values)


@pytest.mark.asyncio
async def test_static_access_token_preferred() -> None:
    backend = SheetsBackend(settings=_settings(ACCESS_TOKEN="static", API_KEY="key"))

    credential = await backend.acquire_token()

    assert credential == Credential(kind="bearer", value="static")
    assert "static" not in repr(credential)


@pytest.mark.asyncio
async def test_refresh_token_exchange() -> None:
    backend = SheetsBackend(
        settings=_settings(CLIENT_ID="id", CLIENT_SECRET="secret", REFRESH_TOKEN="refresh")
    )

    with respx.mock:
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "fresh", "expires_in": 3599})
        )
        credential = await backend.acquire_token()

    assert credential == Credential(kind="bearer", value="fresh")
    body = route.calls.last.request.content.decode()
    assert "grant_type=refresh_token" in body
    assert "refresh_token=refresh" in body


@pytest.mark.asyncio
async def test_refresh_token_exchange_failure() -> None:
    backend = SheetsBackend(
        settings=_settings(CLIENT_ID="id", CLIENT_SECRET="secret", REFRESH_TOKEN="refresh")
    )

    with respx.mock:
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(401, json={"error": "invalid"}))
        with pytest.raises(BackendUnavailable):
            await backend.acquire_token()


@pytest.mark.asyncio
async def test_api_key_fallback() -> None:
    backend = SheetsBackend(settings=_settings(API_KEY="key"))

    assert await backend.acquire_token() == Credential(kind="api_key", value="key")


@pytest.mark.asyncio
async def test_missing_credentials_raise() -> None:
    backend = SheetsBackend(settings=_settings())

    with pytest.raises(BackendUnavailable):
        await backend.acquire_token()


@pytest.mark.asyncio
async def test_fetch_table_returns_string_rows() -> None:
    backend = SheetsBackend(settings=_settings())

    with respx.mock:
        route = respx.get(url__startswith=VALUES_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "range": "weretail-internal!C2:G3",
                    "majorDimension": "ROWS",
                    "values": [["S1", "Shirt", "", "19.99", "img1"], ["S2", "Shoe", "", 49]],
                },
            )
        )
        rows = await backend.fetch_table(
            Credential(kind="bearer", value="tok"), "sheet-1", "weretail-internal!C2:G"
        )

    assert rows == [["S1", "Shirt", "", "19.99", "img1"], ["S2", "Shoe", "", "49"]]
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.params["valueRenderOption"] == "UNFORMATTED_VALUE"


@pytest.mark.asyncio
async def test_fetch_table_with_api_key_uses_query_param() -> None:
    backend = SheetsBackend(settings=_settings())

    with respx.mock:
        route = respx.get(url__startswith=VALUES_URL).mock(
            return_value=httpx.Response(200, json={"range": "weretail-internal!C2:G"})
        )
        rows = await backend.fetch_table(
            Credential(kind="api_key", value="key"), "sheet-1", "weretail-internal!C2:G"
        )

    assert rows == []
    assert route.calls.last.request.url.params["key"] == "key"
    assert route.calls.last.request.url.params["valueRenderOption"] == "UNFORMATTED_VALUE"


@pytest.mark.asyncio
async def test_fetched_numeric_prices_map_to_records() -> None:
    backend = SheetsBackend(settings=_settings())

    with respx.mock:
        respx.get(url__startswith=VALUES_URL).mock(
            return_value=httpx.Response(200, json={"values": [["S1", "Shirt", "", 19.99, "img1"]]})
        )
        [row] = await backend.fetch_table(
            Credential(kind="bearer", value="tok"), "sheet-1", "weretail-internal!C2:G"
        )

    assert ProductRecord.from_row(row).price.amount == 19.99


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"values": "not rows"}),
    ],
)
async def test_fetch_table_failures_raise_backend_unavailable(response: httpx.Response) -> None:
    backend = SheetsBackend(settings=_settings())

    with respx.mock:
        respx.get(url__startswith=VALUES_URL).mock(return_value=response)
        with pytest.raises(BackendUnavailable):
            await backend.fetch_table(
                Credential(kind="bearer", value="tok"), "sheet-1", "weretail-internal!C2:G"
            )


@pytest.mark.asyncio
async def test_fetch_table_transport_error() -> None:
    backend = SheetsBackend(settings=_settings())

    with respx.mock:
        respx.get(url__startswith=VALUES_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(BackendUnavailable):
            await backend.fetch_table(
                Credential(kind="bearer", value="tok"), "sheet-1", "weretail-internal!C2:G"
            )
