"""
Airtable REST client.

All outbound calls go through one serial queue that keeps a fixed gap between
requests (Airtable allows only a handful of calls per second per base).
Reads are cached per table + query for a fixed TTL, and identical reads that
are already in flight are shared instead of being sent twice.
"""
import json
import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests


class AirtableError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AirtableClient:
    API_BASE_URL = "https://api.airtable.com/v0"
    PAGE_SIZE = 100

    def __init__(
        self,
        api_key: str,
        base_id: str,
        *,
        request_delay: float = 2.0,
        cache_ttl: int = 30 * 60,
        timeout: float = 15.0,
        http: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_id = base_id
        self.request_delay = request_delay
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self._http = http or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

        self._queue_lock = threading.Lock()
        self._last_request_at: Optional[float] = None
        self._cache: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}
        self._inflight: Dict[str, Future] = {}
        self._state_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_id)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.API_BASE_URL}/{self.base_id}/{table}"
        return f"{url}/{record_id}" if record_id else url

    def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Run one HTTP call through the serial queue."""
        if not self.configured:
            raise AirtableError("Airtable credentials missing. Set AIRTABLE_API_KEY and AIRTABLE_BASE_ID")
        with self._queue_lock:
            if self._last_request_at is not None:
                wait = self.request_delay - (self._clock() - self._last_request_at)
                if wait > 0:
                    self._sleep(wait)
            try:
                response = self._http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
            except requests.exceptions.RequestException as exc:
                raise AirtableError(f"Airtable request failed: {exc}") from exc
            finally:
                self._last_request_at = self._clock()

        if response.status_code >= 400:
            raise AirtableError(
                f"Airtable API error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AirtableError("Airtable returned a non-JSON response") from exc

    @staticmethod
    def _cache_key(table: str, params: Dict[str, Any], max_records: Optional[int]) -> str:
        return f"{table}:{json.dumps(params, sort_keys=True)}:{max_records}"

    def list_records(
        self,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        use_cache: bool = True,
        max_records: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return every record of ``table`` matching ``params``.

        A 429 from Airtable yields an empty list instead of an error.
        """
        params = dict(params or {})
        key = self._cache_key(table, params, max_records)

        if use_cache:
            cached = self._cache_get(key)
            if cached is not None:
                return cached

        with self._state_lock:
            pending = self._inflight.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[key] = pending
        if not owner:
            self.logger.debug("Request already in progress for %s, waiting", table)
            return pending.result()

        try:
            records = self._fetch_all(table, params, max_records)
            if use_cache:
                self._cache_set(key, records)
            pending.set_result(records)
            return records
        except AirtableError as exc:
            if exc.status_code == 429:
                self.logger.warning("Airtable rate limited on %s, returning empty result", table)
                pending.set_result([])
                return []
            pending.set_exception(exc)
            raise
        except Exception as exc:
            pending.set_exception(exc)
            raise
        finally:
            with self._state_lock:
                self._inflight.pop(key, None)

    def _fetch_all(self, table: str, params: Dict[str, Any], max_records: Optional[int]) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        query = dict(params)
        if max_records:
            query["maxRecords"] = max_records
        while True:
            data = self._send("GET", self._url(table), params=query)
            records.extend(data.get("records") or [])
            offset = data.get("offset")
            if not offset or (max_records and len(records) >= max_records):
                break
            query["offset"] = offset
        return records[:max_records] if max_records else records

    def find_first(self, table: str, formula: str) -> Optional[Dict[str, Any]]:
        """Uncached lookup used before writes; a 429 raises instead of reading as "no match"."""
        records = self._fetch_all(table, {"filterByFormula": formula}, 1)
        return records[0] if records else None

    def create_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", self._url(table), json={"fields": fields})

    def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("PATCH", self._url(table, record_id), json={"fields": fields})

    def _cache_get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        with self._state_lock:
            item = self._cache.get(key)
            if not item:
                return None
            expires_at, records = item
            if self._clock() > expires_at:
                self._cache.pop(key, None)
                return None
            return records

    def _cache_set(self, key: str, records: List[Dict[str, Any]]) -> None:
        with self._state_lock:
            self._cache[key] = (self._clock() + self.cache_ttl, records)

    def invalidate(self) -> None:
        with self._state_lock:
            self._cache.clear()
