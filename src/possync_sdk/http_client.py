"""Shared HTTP transport for the possync clients.

Reads are retried with exponential backoff and may be served from a short
in-memory cache. Writes are sent exactly once: a sale POST that times out is
left for the reconciliation pass, which resubmits it under the same bill id.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import TransportError
from .tracing import TRACE_HEADER, TraceContext

logger = logging.getLogger(__name__)

Payload = dict[str, Any] | list[Any] | None

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})
_CACHE_KEY_HEADERS = ("Authorization", "apikey")


@dataclass
class LastOperation:
    module: str
    operation: str
    duration_ms: int
    result: str
    trace_id: str | None


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext | None = None
    session: requests.Session | None = None
    cache_ttl_seconds: float = 3.0
    enable_get_cache: bool = True
    last_operation: LastOperation | None = None
    _cache: dict[str, tuple[float, Payload]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.trace = self.trace or TraceContext()
        if self.session is None:
            self.session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_connections,
                pool_maxsize=self.config.max_connections,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        module: str = "unknown",
        operation: str = "unknown",
        use_get_cache: bool = True,
        invalidate_paths: list[str] | None = None,
    ) -> Payload:
        method = method.upper()
        url = urljoin(self.config.api_base_url.rstrip("/") + "/", path.lstrip("/"))
        request_headers = self._headers(headers)

        cache_key = None
        if method == "GET" and use_get_cache and self.enable_get_cache:
            cache_key = self._cache_key(url, request_headers, params)
            hit, cached = self._cache_lookup(cache_key)
            if hit:
                self._finish(module, operation, time.monotonic(), "success(cache)")
                return cached

        started = time.monotonic()
        try:
            response = self._send(method, url, path, request_headers, json_body, params)
        except TransportError:
            self._finish(module, operation, started, "error")
            raise

        self.trace.update_from_headers(response.headers)
        if not response.ok:
            payload = self._error_payload(response)
            self.trace.update_from_payload(payload)
            self._finish(module, operation, started, "error")
            raise map_error(response.status_code, payload, self.trace.trace_id)

        parsed = response.json() if response.content else None
        if cache_key:
            self._cache[cache_key] = (time.monotonic() + self.cache_ttl_seconds, parsed)
        if method not in IDEMPOTENT_METHODS and invalidate_paths:
            self._invalidate(invalidate_paths)
        self._finish(module, operation, started, "success")
        return parsed

    def clear_cache(self) -> None:
        self._cache.clear()

    def _headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["apikey"] = self.config.api_key
        headers.update(extra or {})
        headers[TRACE_HEADER] = self.trace.next_request_id()
        return headers

    def _send(
        self,
        method: str,
        url: str,
        path: str,
        headers: dict[str, str],
        json_body: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> requests.Response:
        attempts = self.config.retries + 1 if method in IDEMPOTENT_METHODS else 1
        attempt = 1
        while True:
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if attempt == attempts:
                    logger.warning("%s %s failed after %d attempt(s): %s", method, path, attempt, exc)
                    raise TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc),
                        details={"type": type(exc).__name__},
                        trace_id=self.trace.trace_id,
                        status_code=0,
                    ) from exc
            else:
                if response.status_code < 500 or attempt == attempts:
                    return response
                logger.info("%s %s answered %d; retrying", method, path, response.status_code)
            time.sleep(self.config.retry_backoff_seconds * (2 ** (attempt - 1)))
            attempt += 1

    @staticmethod
    def _error_payload(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {"message": response.text} if response.text else {}
        return payload if isinstance(payload, dict) else {"details": payload}

    def _finish(self, module: str, operation: str, started: float, result: str) -> None:
        self.last_operation = LastOperation(
            module=module,
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            trace_id=self.trace.trace_id,
        )

    @staticmethod
    def _cache_key(url: str, headers: dict[str, str], params: dict[str, Any] | None) -> str:
        scope = {key: headers[key] for key in _CACHE_KEY_HEADERS if key in headers}
        return json.dumps({"url": url, "scope": scope, "params": params or {}}, sort_keys=True)

    def _cache_lookup(self, key: str) -> tuple[bool, Payload]:
        entry = self._cache.get(key)
        if entry is None:
            return False, None
        expires_at, payload = entry
        if time.monotonic() >= expires_at:
            del self._cache[key]
            return False, None
        return True, payload

    def _invalidate(self, paths: list[str]) -> None:
        # a recorded sale changes stock levels and the sales list
        for key in [key for key in self._cache if any(path in key for path in paths)]:
            del self._cache[key]
