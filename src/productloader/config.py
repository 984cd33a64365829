"""
Loader settings resolved from action parameters and the environment.
"""

from __future__ import annotations

import os
import typing as t

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "PRODUCTLOADER_"
DEFAULT_SHEET_RANGE = "weretail-internal!C2:G"
DEFAULT_SHEETS_BASE_URL = "https://sheets.googleapis.com"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"


class LoaderSettings(BaseModel):
    """
    Configuration of one products loader.

    Parameters
    ----------
    spreadsheet : str
        Identifier of the backing spreadsheet (``SPREADSHEET`` action parameter).
    sheet_range : str
        A1 range fetched on every batch.
    sheets_base_url : str
        Base URL of the Sheets values API.
    token_url : str
        OAuth token endpoint used for the refresh-token grant.
    access_token, api_key, client_id, client_secret, refresh_token : str | None
        Credential material, checked in that order by the backend.
    timeout_seconds : float
        HTTP client timeout.
    cache_ttl_seconds : float | None
        Lifetime of cache entries; ``None`` keeps them for the loader's life.
    max_batch_size : int | None
        Upper bound on keys per resolver call; ``None`` means unbounded.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    spreadsheet: str = Field(alias="SPREADSHEET", min_length=1)
    sheet_range: str = Field(default=DEFAULT_SHEET_RANGE, alias="SHEET_RANGE")
    sheets_base_url: str = Field(default=DEFAULT_SHEETS_BASE_URL, alias="SHEETS_BASE_URL")
    token_url: str = Field(default=DEFAULT_TOKEN_URL, alias="TOKEN_URL")
    access_token: str | None = Field(default=None, alias="ACCESS_TOKEN")
    api_key: str | None = Field(default=None, alias="API_KEY")
    client_id: str | None = Field(default=None, alias="CLIENT_ID")
    client_secret: str | None = Field(default=None, alias="CLIENT_SECRET")
    refresh_token: str | None = Field(default=None, alias="REFRESH_TOKEN")
    timeout_seconds: float = Field(default=30.0, alias="TIMEOUT_SECONDS", gt=0)
    cache_ttl_seconds: float | None = Field(default=None, alias="CACHE_TTL_SECONDS", gt=0)
    max_batch_size: int | None = Field(default=None, alias="MAX_BATCH_SIZE", ge=1)

    @classmethod
    def from_action_parameters(
        cls,
        action_parameters: t.Mapping[str, t.Any] | None = None,
        *,
        environ: t.Mapping[str, str] | None = None,
    ) -> LoaderSettings:
        """
        Merge action parameters over ``PRODUCTLOADER_*`` environment variables.

        Parameters
        ----------
        action_parameters : typing.Mapping[str, typing.Any] | None, optional
            Parameters of the invoking action, e.g. ``{"SPREADSHEET": "..."}``.
        environ : typing.Mapping[str, str] | None, optional
            Environment to read instead of ``os.environ``. A ``.env`` file is
            only loaded when reading the process environment.

        Returns
        -------
        LoaderSettings
            Validated settings.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ
        values: dict[str, t.Any] = {
            name.removeprefix(ENV_PREFIX): value
            for name, value in environ.items()
            if name.startswith(ENV_PREFIX) and value
        }
        values.update(
            {key: value for key, value in (action_parameters or {}).items() if value is not None}
        )
        return cls.model_validate(values)
