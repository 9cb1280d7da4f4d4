"""Row store (Coda API) client and paginated collection reader.

Provides a singleton async client initialized on app startup. Every request
carries the bearer credential from settings, asks for the rich value format,
and is bounded by settings.upstream_timeout. Failures are mapped onto the
service error kinds and never retried here.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from songindex.core.config import settings
from songindex.core.errors import (
    MalformedUpstreamData,
    NotFound,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from songindex.core.models import Row, RowPage

logger = logging.getLogger(__name__)

VALUE_FORMAT = "rich"
ERROR_BODY_EXCERPT = 200


class RowStoreClient:
    """Async wrapper over the row store's list/get/search/update endpoints."""

    def __init__(
        self,
        doc_id: str,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.doc_id = doc_id
        self.timeout = timeout if timeout is not None else settings.upstream_timeout
        self.page_size = page_size or settings.page_size
        if token is None:
            token = settings.coda_api_token.get_secret_value()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.coda_api_base,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    def _rows_path(self, table_id: str, row_id: Optional[str] = None) -> str:
        path = f"/docs/{quote(self.doc_id, safe='')}/tables/{quote(table_id, safe='')}/rows"
        if row_id is not None:
            path += f"/{quote(row_id, safe='')}"
        return path

    async def _request(
        self,
        method: str,
        path: str,
        table_id: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        row_id: Optional[str] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.error(f"Row store timeout: {method} table={table_id} after {self.timeout}s")
            raise UpstreamTimeout(
                f"Row store did not respond within {self.timeout}s",
                table_id=table_id,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Row store request failed: {method} table={table_id}: {type(e).__name__}")
            raise UpstreamUnavailable(
                f"Row store request failed: {type(e).__name__}",
                table_id=table_id,
            ) from e

        if response.status_code == 404 and row_id is not None:
            raise NotFound(f"Row {row_id} not found", table_id=table_id, row_id=row_id)

        if not response.is_success:
            logger.error(
                f"Row store error: {method} table={table_id} status={response.status_code} "
                f"body={response.text[:ERROR_BODY_EXCERPT]}"
            )
            raise UpstreamUnavailable(
                f"Row store returned status {response.status_code}",
                table_id=table_id,
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedUpstreamData(
                "Row store response is not valid JSON",
                table_id=table_id,
            ) from e

    async def list_rows(
        self,
        table_id: str,
        page_token: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> RowPage:
        """Fetch one page of rows."""
        params: dict[str, Any] = {
            "valueFormat": VALUE_FORMAT,
            "limit": limit or self.page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        data = await self._request("GET", self._rows_path(table_id), table_id, params=params)
        return _parse_page(data, table_id)

    async def fetch_all(self, table_id: str) -> list[Row]:
        """Read every row of a table, following continuation tokens in order."""
        rows: list[Row] = []
        seen_tokens: set[str] = set()
        page_token: Optional[str] = None
        pages = 0

        while True:
            page = await self.list_rows(table_id, page_token=page_token)
            rows.extend(page.items)
            pages += 1
            page_token = page.next_page_token
            if not page_token:
                break
            if page_token in seen_tokens:
                raise MalformedUpstreamData(
                    "Row store repeated a page token",
                    table_id=table_id,
                )
            seen_tokens.add(page_token)

        logger.info(f"Fetched {len(rows)} rows from {table_id} in {pages} page(s)")
        return rows

    async def get_row(self, table_id: str, row_id: str) -> Row:
        data = await self._request(
            "GET",
            self._rows_path(table_id, row_id),
            table_id,
            params={"valueFormat": VALUE_FORMAT},
            row_id=row_id,
        )
        return _parse_row(data, table_id)

    async def search_rows(self, table_id: str, query: str, limit: int = 5) -> list[Row]:
        """Run a store-side row query (e.g. 'c-abc:"#12"')."""
        params = {"query": query, "valueFormat": VALUE_FORMAT, "limit": limit}
        data = await self._request("GET", self._rows_path(table_id), table_id, params=params)
        return _parse_page(data, table_id).items

    async def update_row(
        self,
        table_id: str,
        row_id: str,
        cells: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Write cell values to one row. Callers validate cells beforehand."""
        data = await self._request(
            "PUT",
            self._rows_path(table_id, row_id),
            table_id,
            json={"row": {"cells": cells}},
            row_id=row_id,
        )
        if not isinstance(data, dict):
            raise MalformedUpstreamData("Unexpected update response", table_id=table_id)
        return data

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_page(data: Any, table_id: str) -> RowPage:
    if not isinstance(data, dict):
        raise MalformedUpstreamData("Expected a JSON object page", table_id=table_id)
    try:
        return RowPage.model_validate(data)
    except ValidationError as e:
        raise MalformedUpstreamData(
            f"Undecodable row page: {e.error_count()} error(s)",
            table_id=table_id,
        ) from e


def _parse_row(data: Any, table_id: str) -> Row:
    if not isinstance(data, dict):
        raise MalformedUpstreamData("Expected a JSON object row", table_id=table_id)
    try:
        return Row.model_validate(data)
    except ValidationError as e:
        raise MalformedUpstreamData(
            f"Undecodable row: {e.error_count()} error(s)",
            table_id=table_id,
        ) from e


# ---------------------------------------------------------------------------
# Singleton lifecycle
# ---------------------------------------------------------------------------

_client: Optional[RowStoreClient] = None


def init_row_store(doc_id: str) -> RowStoreClient:
    """Initialize the row store client. Call once at app startup."""
    global _client
    _client = RowStoreClient(doc_id)
    logger.info(f"Row store client initialized for doc {doc_id}")
    return _client


def get_row_store() -> RowStoreClient:
    """Get the active row store client."""
    if _client is None:
        raise RuntimeError("Row store client not initialized. Call init_row_store() first.")
    return _client


async def close_row_store() -> None:
    """Close the row store client. Call at app shutdown."""
    global _client
    if _client:
        await _client.aclose()
        _client = None
        logger.info("Row store client closed")
