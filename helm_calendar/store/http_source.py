"""HTTP data source speaking to a task/todo backend over JSON.

Backend routes, relative to the base URL (``{collection}`` is ``tasks`` or
``todos``):

- ``GET  /{collection}?due_dated=true``            -> due-dated rows
- ``GET  /{collection}/recurring``                 -> recurring parents
- ``GET  /{collection}/{id}``                      -> one row, 404 if missing
- ``GET  /{collection}/instances?parent_id=&date=`` -> matching instances
- ``POST /{collection}/{parent_id}/instances``     -> new instance, 409 if one exists
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..domain.dates import to_date_key
from ..domain.exceptions import DataSourceError, InstanceExistsError
from ..domain.models import ItemRow, ItemType

logger = logging.getLogger(__name__)

_COLLECTIONS = {ItemType.TASK: "tasks", ItemType.TODO: "todos"}

DEFAULT_LIMITS = httpx.Limits(max_connections=4, max_keepalive_connections=2)
DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=30.0)


class HttpItemSource:
    """ItemDataSource backed by a JSON HTTP backend."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        """Create the source.

        Args:
            base_url: Backend root URL
            client: Shared client to use; one is created (and owned) otherwise
            timeout: Timeout for an owned client
        """
        if not base_url:
            raise ValueError("base_url must be a non-empty string")
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            limits=DEFAULT_LIMITS,
            timeout=timeout or DEFAULT_TIMEOUT,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed HTTP client for %s", self.base_url)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise DataSourceError(f"{method} {url} failed: {e}") from e
        logger.debug("%s %s -> %d", method, url, response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataSourceError(
                f"Invalid JSON from {response.request.method} {response.request.url}"
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DataSourceError(
                f"{response.request.method} {response.request.url} returned {response.status_code}"
            ) from e

    def _rows(self, payload: Any, kind: ItemType) -> list[ItemRow]:
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        if not isinstance(payload, list):
            raise DataSourceError(f"Expected a list of {kind.value} rows, got {type(payload).__name__}")
        rows: list[ItemRow] = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            try:
                rows.append(ItemRow.model_validate({**raw, "type": kind.value}))
            except ValidationError as e:
                logger.warning("Skipping malformed %s row %r: %s", kind.value, raw.get("id"), e)
        return rows

    async def _list(self, kind: ItemType, path: str, params: Optional[dict[str, str]] = None) -> list[ItemRow]:
        response = await self._request("GET", f"/{_COLLECTIONS[kind]}{path}", params=params)
        self._raise_for_status(response)
        return self._rows(self._json(response), kind)

    # ItemDataSource

    async def get_all_due_dated_tasks(self) -> list[ItemRow]:
        return await self._list(ItemType.TASK, "", {"due_dated": "true"})

    async def get_all_due_dated_todos(self) -> list[ItemRow]:
        return await self._list(ItemType.TODO, "", {"due_dated": "true"})

    async def get_recurring_parents(self, kind: ItemType) -> list[ItemRow]:
        kind = ItemType(kind)
        return [row for row in await self._list(kind, "/recurring") if not row.is_instance]

    async def get_item(self, kind: ItemType, item_id: str) -> Optional[ItemRow]:
        kind = ItemType(kind)
        response = await self._request("GET", f"/{_COLLECTIONS[kind]}/{item_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        rows = self._rows([self._json(response)], kind)
        return rows[0] if rows else None

    async def find_instance(
        self, kind: ItemType, parent_id: str, due_date: str
    ) -> Optional[ItemRow]:
        kind = ItemType(kind)
        key = to_date_key(due_date)
        rows = await self._list(kind, "/instances", {"parent_id": parent_id, "date": key})
        matches = [r for r in rows if r.recurring_parent_id == parent_id and r.date_key == key]
        return matches[0] if matches else None

    async def has_instance_on_date(self, parent_id: str, due_date: str) -> bool:
        for kind in ItemType:
            if await self.find_instance(kind, parent_id, due_date) is not None:
                return True
        return False

    async def create_instance(self, parent: ItemRow, due_date: str) -> ItemRow:
        """POST a new instance; a 409 response means it already exists.

        Raises:
            InstanceExistsError: On 409 Conflict
            DataSourceError: On any other failure
        """
        key = to_date_key(due_date)
        response = await self._request(
            "POST",
            f"/{_COLLECTIONS[parent.type]}/{parent.id}/instances",
            json={"due_date": key},
        )
        if response.status_code == 409:
            existing_id = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    existing_id = body.get("existing_id") or body.get("id")
            except ValueError:
                logger.debug("409 response without JSON body for %s on %s", parent.id, key)
            raise InstanceExistsError(parent.id, key, existing_id=existing_id)
        self._raise_for_status(response)
        rows = self._rows([self._json(response)], parent.type)
        if not rows:
            raise DataSourceError(f"Backend returned no instance for {parent.id} on {key}")
        return rows[0]
