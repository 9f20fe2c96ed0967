# cms_client.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import requests

from .settings import ExportConfig

log = logging.getLogger(__name__)


class CMSError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class CMSConnectionError(CMSError):
    """The CMS host could not be reached at all."""


def flatten_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """v4 `{id, attributes: {...}}` -> `{id, **attributes}`; flat items pass through."""
    if not isinstance(item, dict):
        return {}
    out = dict(item)
    attrs = out.pop("attributes", None)
    if isinstance(attrs, dict):
        out.update(attrs)
    elif attrs is not None:
        out["attributes"] = attrs
    if "id" in item:
        out["id"] = item["id"]
    return out


def unwrap_list(payload: Any) -> tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """Accept `{data: [...], meta}`, a bare list, or `{results: [...], pagination}`."""
    if isinstance(payload, list):
        return payload, {}
    if isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            return payload["data"], payload.get("meta") or {}
        if isinstance(payload.get("results"), list):
            return payload["results"], {"pagination": payload.get("pagination") or {}}
        log.warning(f"[cms] unrecognized response keys: {sorted(payload.keys())}")
    return [], {}


class CMSClient:
    """
    Thin wrapper over the CMS REST API.
    - Bearer auth when an API token is configured.
    - Every call uses the configured timeout; nothing is retried.
    - Returns decoded JSON; HTTP errors raise CMSError, network errors CMSConnectionError.
    """

    def __init__(self, config: ExportConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.cms_url
        self.timeout = config.request_timeout_sec
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if config.api_token:
            self.session.headers["Authorization"] = f"Bearer {config.api_token}"

    # ---------- low level ----------
    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            res = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise CMSConnectionError(f"{method} {url} failed: {e}") from e
        if res.status_code >= 400:
            try:
                body = res.json()
            except ValueError:
                body = res.text
            raise CMSError(f"{method} {url} -> HTTP {res.status_code}", status=res.status_code, body=body)
        if not res.content:
            return None
        try:
            return res.json()
        except ValueError as e:
            # proxies and error pages answer 200 with HTML
            raise CMSError(f"{method} {url} -> non-JSON body", status=res.status_code, body=res.text[:200]) from e

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def put(self, path: str, payload: Dict[str, Any]) -> Any:
        return self._request("PUT", path, json=payload)

    def check_connection(self) -> None:
        """Any HTTP answer from the root counts as reachable; network failure raises."""
        try:
            res = self.session.get(f"{self.base_url}/", timeout=self.timeout)
        except requests.RequestException as e:
            raise CMSConnectionError(f"Could not connect to CMS at {self.base_url}: {e}") from e
        log.info(f"[cms] reachable at {self.base_url} (HTTP {res.status_code})")

    # ---------- collections ----------
    def fetch_collection(self, collection: str) -> List[Dict[str, Any]]:
        """All items of a collection, following pagination; items are flattened."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            params = {
                "populate": "*",
                "pagination[page]": page,
                "pagination[pageSize]": self.config.page_size,
            }
            payload = self.get(f"/api/{collection}", params=params)
            data, meta = unwrap_list(payload)
            items.extend(flatten_item(d) for d in data)
            pagination = (meta or {}).get("pagination") or {}
            page_count = pagination.get("pageCount")
            log.debug(f"[cms] {collection} page={page} got={len(data)} pageCount={page_count}")
            if not data or not page_count or page >= int(page_count):
                break
            page += 1
        log.info(f"[cms] fetched {len(items)} {collection}")
        return items

    def fetch_one(self, collection: str, item_id: int) -> Optional[Dict[str, Any]]:
        try:
            payload = self.get(f"/api/{collection}/{item_id}", params={"populate": "*"})
        except CMSError as e:
            if e.status == 404:
                return None
            raise
        data = payload.get("data") if isinstance(payload, dict) else None
        return flatten_item(data) if isinstance(data, dict) else None

    def find_by_slug(self, collection: str, slug: str) -> Optional[Dict[str, Any]]:
        for key in ("Slug", "slug"):
            try:
                payload = self.get(
                    f"/api/{collection}",
                    params={f"filters[{key}][$eq]": slug, "populate": "*"},
                )
            except CMSConnectionError:
                raise
            except CMSError as e:
                # unknown filter field answers 400
                log.debug(f"[cms] slug lookup via {key} failed: {e}")
                continue
            data, _ = unwrap_list(payload)
            if data:
                return flatten_item(data[0])
        return None

    def update_slug(self, collection: str, item_id: int, slug: str) -> Any:
        return self.put(f"/api/{collection}/{item_id}", {"data": {"Slug": slug}})
