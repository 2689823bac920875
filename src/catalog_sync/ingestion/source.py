"""Catalog source adapters.

:class:`CatalogSource` is the abstract contract the loaders and the
reconciler depend on; :class:`HttpCatalogSource` talks to the item
service over HTTP.  Adapters do **not** retry: a failed request surfaces
as :class:`~catalog_sync.errors.PageFetchError` and the caller decides
what that means (fatal for the sequential loader, one requeue for the
parallel loader, "skip" for the reconciler).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from catalog_sync.config import settings
from catalog_sync.errors import PageFetchError
from catalog_sync.ingestion.models import PageResult

logger = logging.getLogger(__name__)


class CatalogSource(ABC):
    """Backend-agnostic read access to the catalog."""

    @abstractmethod
    def fetch_page(
        self,
        page_no: int,
        page_size: int,
        *,
        sort_by: str | None = None,
        ascending: bool = True,
    ) -> PageResult:
        """Return page *page_no* (1-based) of at most *page_size* items.

        An empty ``items`` list means there is no more data.
        """
        ...

    @abstractmethod
    def fetch_by_id(self, item_id: int) -> dict[str, Any] | None:
        """Return the raw record for *item_id*, or ``None`` if it does not exist."""
        ...

    def fetch_by_ids(self, item_ids: list[int]) -> list[dict[str, Any]]:
        """Return the raw records for *item_ids*.  Missing ids are omitted."""
        records = []
        for item_id in item_ids:
            record = self.fetch_by_id(item_id)
            if record is not None:
                records.append(record)
        return records


class HttpCatalogSource(CatalogSource):
    """Client for the item service's paging API.

    Parameters
    ----------
    base_url:
        Service root, e.g. ``http://item-service:8081``.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-configured :class:`requests.Session` (headers,
        adapters, proxies).
    """

    def __init__(
        self,
        base_url: str = settings.catalog_base_url,
        *,
        timeout: float = settings.catalog_timeout,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_page(
        self,
        page_no: int,
        page_size: int,
        *,
        sort_by: str | None = None,
        ascending: bool = True,
    ) -> PageResult:
        params: dict[str, Any] = {"pageNo": page_no, "pageSize": page_size, "isAsc": str(ascending).lower()}
        if sort_by:
            params["sortBy"] = sort_by

        payload = self._get_json("/items/page", params=params)
        if not isinstance(payload, dict):
            return PageResult()

        items = payload.get("list") or []
        return PageResult(
            items=[item for item in items if isinstance(item, dict)],
            total_items=payload.get("total"),
            total_pages=payload.get("pages"),
        )

    def fetch_by_id(self, item_id: int) -> dict[str, Any] | None:
        url = f"{self._base_url}/items/{item_id}"
        try:
            resp = self._session.get(url, timeout=self._timeout)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            payload = resp.json() if resp.content else None
        except (requests.RequestException, ValueError) as exc:
            raise PageFetchError(f"Failed to fetch item {item_id}: {exc}") from exc
        return payload if isinstance(payload, dict) else None

    def fetch_by_ids(self, item_ids: list[int]) -> list[dict[str, Any]]:
        if not item_ids:
            return []
        url = f"{self._base_url}/items/batch"
        try:
            resp = self._session.post(url, json=list(item_ids), timeout=self._timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise PageFetchError(f"Failed to fetch items {item_ids}: {exc}") from exc
        return [item for item in payload or [] if isinstance(item, dict)]

    def _get_json(self, path: str, *, params: dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise PageFetchError(f"GET {path} {params} failed: {exc}") from exc
