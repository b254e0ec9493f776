"""Spreadsheet values API client for the mirror store, with retry logic."""

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from fieldserve.config import get_settings
from fieldserve.errors import MirrorStoreError

logger = logging.getLogger(__name__)
settings = get_settings()


class SheetsClientError(MirrorStoreError):
    """Base exception for spreadsheet client errors."""

    pass


def column_letter(index: int) -> str:
    """Convert a 0-based column index to A1 notation (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative: {index}")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def _quote_tab(tab: str) -> str:
    return "'" + tab.replace("'", "''") + "'"


class SheetsClient:
    """
    Client for the spreadsheet values REST API backing the mirror store.

    Features:
    - Bearer token auth (token acquisition happens outside this service)
    - Exponential backoff retry (3 attempts) on 429, 5xx and transport errors
    - Whole-tab reads, row appends and batched single-cell updates
    """

    def __init__(
        self,
        base_url: str = settings.sheets_base_url,
        spreadsheet_id: str = settings.sheets_spreadsheet_id,
        access_token: str | None = settings.sheets_access_token,
        max_retries: int = 3,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.spreadsheet_id = spreadsheet_id
        self.access_token = access_token
        self.max_retries = max_retries
        self.timeout = timeout

        # Build headers
        self.headers: dict[str, str] = {
            "Accept": "application/json",
        }
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"

    @property
    def spreadsheet_url(self) -> str:
        return f"{self.base_url}/spreadsheets/{self.spreadsheet_id}"

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request with exponential backoff retry."""
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, headers=self.headers, params=params, json=json
                    )
                    response.raise_for_status()
                    return response.json() if response.content else {}

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code == 429:  # Rate limited
                    wait_time = 2**attempt * 10  # 10s, 20s, 40s
                    logger.warning(f"Rate limited, waiting {wait_time}s before retry")
                    await asyncio.sleep(wait_time)
                elif e.response.status_code >= 500:  # Server error
                    wait_time = 2**attempt
                    logger.warning(f"Server error {e.response.status_code}, retry in {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    raise SheetsClientError(f"HTTP error: {e}") from e

            except httpx.RequestError as e:
                last_error = e
                wait_time = 2**attempt
                logger.warning(f"Request error: {e}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

        raise SheetsClientError(f"Failed after {self.max_retries} retries: {last_error}")

    async def get_rows(self, tab: str) -> list[list[str]]:
        """
        Fetch every row of a tab, header row included.

        Trailing empty cells are omitted by the API, so rows may be shorter
        than the header.
        """
        range_ = quote(f"{_quote_tab(tab)}!A:ZZ", safe="")
        url = f"{self.spreadsheet_url}/values/{range_}"

        logger.debug(f"Fetching mirror rows: tab={tab}")
        data = await self._request_with_retry("GET", url)
        rows = data.get("values") or []
        logger.debug(f"Fetched {len(rows)} rows from {tab}")

        return [[str(cell) for cell in row] for row in rows]

    async def append_row(self, tab: str, values: list[str]) -> None:
        """Append one row after the last non-empty row of a tab."""
        range_ = quote(f"{_quote_tab(tab)}!A1", safe="")
        url = f"{self.spreadsheet_url}/values/{range_}:append"

        params = {
            "valueInputOption": "USER_ENTERED",
            "insertDataOption": "INSERT_ROWS",
        }
        await self._request_with_retry(
            "POST", url, params=params, json={"values": [values]}
        )

    async def update_cells(
        self,
        tab: str,
        cells: list[tuple[int, int, str]],
    ) -> None:
        """
        Write several single cells in one call.

        Args:
            tab: Sheet tab name
            cells: (row_number, column_index, value) with 1-based row numbers
                and 0-based column indices
        """
        if not cells:
            return

        data = [
            {
                "range": f"{_quote_tab(tab)}!{column_letter(col)}{row}",
                "values": [[value]],
            }
            for row, col, value in cells
        ]
        url = f"{self.spreadsheet_url}/values:batchUpdate"

        await self._request_with_retry(
            "POST",
            url,
            json={"valueInputOption": "USER_ENTERED", "data": data},
        )
