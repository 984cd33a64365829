"""
Backing table source: Google Sheets values API reached over ``httpx``.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from productloader.config import LoaderSettings
from productloader.exceptions import BackendUnavailable, describe_error

log = structlog.get_logger(__name__)

Row = list[str]

# Raw numbers instead of display strings such as "$19.99"
VALUE_RENDER_OPTION = "UNFORMATTED_VALUE"


@dataclass(frozen=True)
class Credential:
    """
    Credential used for one table fetch.

    Parameters
    ----------
    kind : typing.Literal["bearer", "api_key"]
        How the credential is attached to requests.
    value : str
        Token or key material.
    """

    kind: t.Literal["bearer", "api_key"]
    value: str

    def request_kwargs(self) -> dict[str, t.Any]:
        """
        Build the ``httpx`` request arguments carrying the credential.

        Returns
        -------
        dict[str, typing.Any]
            ``headers`` for bearer tokens, ``params`` for API keys.
        """
        if self.kind == "bearer":
            return {"headers": {"Authorization": f"Bearer {self.value}"}}
        return {"params": {"key": self.value}}

    def __repr__(self) -> str:
        return f"Credential(kind={self.kind!r}, value='***')"


class TableBackend(t.Protocol):
    """Operations the resolver consumes from the backing source."""

    async def acquire_token(self) -> Credential: ...

    async def fetch_table(
        self, credential: Credential, table_id: str, table_range: str
    ) -> list[Row]: ...


class _TokenResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str
    expires_in: int | None = None


class _ValueRange(BaseModel):
    model_config = ConfigDict(extra="allow")

    range: str | None = None
    values: list[list[t.Any]] = []


class SheetsBackend:
    """
    Fetch whole sheet ranges from the Google Sheets values API.

    Parameters
    ----------
    settings : LoaderSettings
        Base URLs, timeout and credential material.
    """

    def __init__(self, settings: LoaderSettings) -> None:
        self._settings = settings
        self._client_factory: t.Callable[[], httpx.AsyncClient] = lambda: httpx.AsyncClient(
            timeout=settings.timeout_seconds
        )

    async def acquire_token(self) -> Credential:
        """
        Obtain a credential for the next fetch.

        Returns
        -------
        Credential
            A static bearer token, a token from the OAuth refresh-token grant,
            or an API key, in that order of preference.

        Raises
        ------
        BackendUnavailable
            If no credential is configured or the token exchange fails.
        """
        settings = self._settings
        if settings.access_token:
            return Credential(kind="bearer", value=settings.access_token)
        if settings.refresh_token and settings.client_id and settings.client_secret:
            return await self._exchange_refresh_token()
        if settings.api_key:
            return Credential(kind="api_key", value=settings.api_key)
        raise BackendUnavailable("No credential configured for the spreadsheet backend")

    async def _exchange_refresh_token(self) -> Credential:
        settings = self._settings
        log.debug(event="Exchanging refresh token", token_url=settings.token_url)
        try:
            async with self._client_factory() as client:
                response = await client.post(
                    url=settings.token_url,
                    data={
                        "grant_type": "refresh_token",
                        "client_id": settings.client_id,
                        "client_secret": settings.client_secret,
                        "refresh_token": settings.refresh_token,
                    },
                )
                response.raise_for_status()
                token = _TokenResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as error:
            log.error(event="Token acquisition failed", error=describe_error(error=error))
            raise BackendUnavailable(f"Token acquisition failed: {error}") from error
        log.debug(event="Token acquired", expires_in=token.expires_in)
        return Credential(kind="bearer", value=token.access_token)

    async def fetch_table(
        self, credential: Credential, table_id: str, table_range: str
    ) -> list[Row]:
        """
        Fetch every row of a sheet range.

        Parameters
        ----------
        credential : Credential
            Credential returned by ``acquire_token``.
        table_id : str
            Spreadsheet identifier.
        table_range : str
            A1 range, e.g. ``weretail-internal!C2:G``.

        Returns
        -------
        list[Row]
            Rows of string cells; an empty range gives an empty list.

        Raises
        ------
        BackendUnavailable
            On transport errors, non-success statuses or unexpected payloads.
        """
        url = (
            f"{self._settings.sheets_base_url}/v4/spreadsheets/"
            f"{quote(table_id, safe='')}/values/{quote(table_range, safe='')}"
        )
        request_kwargs = credential.request_kwargs()
        request_kwargs["params"] = {
            **request_kwargs.get("params", {}),
            "valueRenderOption": VALUE_RENDER_OPTION,
        }
        log.debug(event="Fetching table", table_id=table_id, table_range=table_range)
        try:
            async with self._client_factory() as client:
                response = await client.get(url=url, **request_kwargs)
                response.raise_for_status()
                payload = _ValueRange.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as error:
            log.error(
                event="Table fetch failed",
                table_id=table_id,
                table_range=table_range,
                error=describe_error(error=error),
            )
            raise BackendUnavailable(f"Table fetch failed: {error}") from error
        rows = [[str(cell) for cell in row] for row in payload.values]
        log.debug(event="Table fetched", table_id=table_id, row_count=len(rows))
        return rows
