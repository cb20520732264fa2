# recipehub/db_rest.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from app.settings import settings

LOG = logging.getLogger(__name__)

# Timeouts
_DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0, read=20.0, write=10.0)

Params = Dict[str, str]


def quote_value(value: Any) -> str:
    """Double-quoted PostgREST value; reserved characters like , ( ) lose their meaning inside."""
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def in_list(values: List[str]) -> str:
    """PostgREST `in.(...)` filter; values are quoted so uuids and CJK survive."""
    quoted = ",".join(quote_value(v) for v in values)
    return f"in.({quoted})"


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        # keep table + PostgREST error body in the message
        raise httpx.HTTPStatusError(
            f"{what} failed: {resp.status_code} {_body(resp)}",
            request=e.request,
            response=resp,
        ) from e


def _rows(resp: httpx.Response) -> Any:
    if resp.status_code == 204 or not resp.content:
        return []
    return _body(resp)


def error_code(exc: httpx.HTTPStatusError) -> Optional[str]:
    """Postgres error code (e.g. '23505') from a PostgREST error response."""
    body = _body(exc.response) if exc.response is not None else None
    if isinstance(body, dict):
        code = body.get("code")
        return str(code) if code is not None else None
    return None


class SupabaseREST:
    """
    Minimal async PostgREST wrapper for the recipes backend.
    Methods:
      - select(table, params) -> list
      - count(table, params) -> int
      - insert(table, payload, *, upsert=False, on_conflict=None, return_representation=True)
      - update(table, filters, payload)
      - delete(table, filters)
    Filters and params are PostgREST query parameters, e.g. {"id": "eq.123"}.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        retries: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        if not self.base_url:
            raise RuntimeError("SUPABASE_URL not configured")
        # service role first for privileged writes
        self.api_key = api_key or settings.SUPABASE_JWT or None
        self.retries = retries
        self.transport = transport

    def _auth_headers(self) -> Dict[str, str]:
        h: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            h["apikey"] = self.api_key
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Params] = None,
        json_payload: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{path.lstrip('/')}"
        hdrs = self._auth_headers()
        if headers:
            hdrs.update(headers)

        async with httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT, follow_redirects=True, transport=self.transport) as client:
            for attempt in range(self.retries + 1):
                try:
                    return await client.request(method, url, params=params, json=json_payload, headers=hdrs)
                except httpx.TransportError as e:
                    if attempt >= self.retries:
                        raise
                    LOG.warning("%s %s failed (%s), retry %d/%d", method, path, e, attempt + 1, self.retries)
                    await asyncio.sleep(0.2 * (attempt + 1))
        raise RuntimeError("unreachable")

    @staticmethod
    def _prefer(return_representation: bool, *extra: str) -> Dict[str, str]:
        prefers = [*extra, f"return={'representation' if return_representation else 'minimal'}"]
        return {"Prefer": ", ".join(prefers)}

    # -------------------- reads --------------------
    async def select(self, table: str, params: Optional[Params] = None) -> Any:
        resp = await self._request("GET", table, params=params or {})
        _raise_for_status(resp, f"Select {table}")
        return _rows(resp)

    async def count(self, table: str, filters: Optional[Params] = None) -> int:
        """Exact row count via `Prefer: count=exact` and the Content-Range header."""
        params = {"select": "id", "limit": "1", **(filters or {})}
        resp = await self._request("GET", table, params=params, headers={"Prefer": "count=exact"})
        _raise_for_status(resp, f"Count {table}")
        # Content-Range: 0-0/42  or  */0
        total = resp.headers.get("content-range", "*/0").rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    # -------------------- writes --------------------
    async def insert(
        self,
        table: str,
        payload: Union[Dict[str, Any], List[Dict[str, Any]]],
        *,
        upsert: bool = False,
        on_conflict: Optional[str] = None,
        return_representation: bool = True,
        params: Optional[Params] = None,
    ) -> Any:
        hdrs = self._prefer(return_representation, *(["resolution=merge-duplicates"] if upsert else []))
        params_final = dict(params or {})
        if on_conflict:
            params_final["on_conflict"] = on_conflict
        resp = await self._request("POST", table, params=params_final, json_payload=payload, headers=hdrs)
        _raise_for_status(resp, f"Insert {table}")
        return _rows(resp)

    async def update(
        self,
        table: str,
        filters: Params,
        payload: Dict[str, Any],
        *,
        params: Optional[Params] = None,
        return_representation: bool = True,
    ) -> Any:
        params_final = {**(params or {}), **(filters or {})}
        resp = await self._request(
            "PATCH", table, params=params_final, json_payload=payload, headers=self._prefer(return_representation)
        )
        _raise_for_status(resp, f"Update {table}")
        return _rows(resp)

    async def delete(
        self,
        table: str,
        filters: Optional[Params] = None,
        *,
        return_representation: bool = True,
    ) -> Any:
        if not filters:
            # PostgREST would refuse anyway; never send an unfiltered delete
            raise ValueError(f"refusing unfiltered delete on {table}")
        resp = await self._request("DELETE", table, params=dict(filters), headers=self._prefer(return_representation))
        _raise_for_status(resp, f"Delete {table}")
        return _rows(resp)

