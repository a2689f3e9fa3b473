"""
Gemeinsamer HTTP-Client für alle externen Dienste.

Fehler werden nie geworfen, sondern als ApiResponse(error=...) zurückgegeben.
Transiente Fehler (Timeout, Verbindungsfehler, 408/429/5xx) werden mit
exponentiellem Backoff + Jitter wiederholt, 401/403 nie.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from countarr.config import REQUEST_TIMEOUT
from countarr.utils.dates import utcnow
from countarr.utils.network import create_httpx_client

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
MAX_RETRY_DELAY = 30.0


@dataclass
class ApiResponse:
    data: Any = None
    error: Optional[str] = None
    status: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def split_url_credentials(url: str):
    """Strip "user:pass@" from a URL, return (clean_url, (user, pass) or None)."""
    parts = urlsplit(url)
    if not parts.username and not parts.password:
        return url, None

    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    clean = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    return clean, (parts.username or "", parts.password or "")


class BaseClient:
    """Basis für Radarr, Sonarr, Bazarr, Prowlarr, Jellyseerr und Emby/Jellyfin"""

    status_path = "/api/v3/system/status"

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        clean_url, credentials = split_url_credentials(url)
        self.url = clean_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.basic_auth = credentials
        self.transport = transport

    def auth_headers(self) -> Dict[str, str]:
        # Die *arr-Apps nutzen alle X-Api-Key
        return {"X-Api-Key": self.api_key}

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        headers.update(self.auth_headers())
        return headers

    def _retry_delay(self, attempt: int) -> float:
        delay = self.retry_delay * (2 ** attempt) + random.uniform(0, self.retry_delay)
        return min(delay, MAX_RETRY_DELAY)

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None
        if value.strip().isdigit():
            return min(float(value), MAX_RETRY_DELAY)
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc).replace(tzinfo=None)
        return min(max(0.0, (when - utcnow()).total_seconds()), MAX_RETRY_DELAY)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("GET", path, params=params)

    async def request(self, method: str, path: str, **kwargs) -> ApiResponse:
        url = f"{self.url}{path}"
        last_error = "Unknown error"
        last_status = 0

        async with create_httpx_client(
            timeout=self.timeout,
            headers=self._headers(),
            auth=self.basic_auth,
            transport=self.transport,
        ) as client:
            for attempt in range(self.max_retries + 1):
                can_retry = attempt < self.max_retries
                try:
                    response = await client.request(method, url, **kwargs)
                except httpx.TimeoutException:
                    last_error, last_status = "Request timeout", 0
                except httpx.TransportError as e:
                    last_error, last_status = str(e) or e.__class__.__name__, 0
                else:
                    status = response.status_code

                    if status in (401, 403):
                        error = "Unauthorized - check API key" if status == 401 else "Forbidden - access denied"
                        return ApiResponse(error=error, status=status)

                    if status == 429:
                        if can_retry:
                            delay = self._retry_after(response)
                            if delay is None:
                                delay = self._retry_delay(attempt)
                            logger.warning(f"Rate limited by {self.url}, retrying in {delay:.1f}s")
                            await asyncio.sleep(delay)
                            continue
                        return ApiResponse(error="Rate limit exceeded", status=429)

                    if status >= 400:
                        last_error = f"HTTP {status}: {response.reason_phrase}"
                        last_status = status
                        if status in RETRYABLE_STATUS_CODES and can_retry:
                            delay = self._retry_delay(attempt)
                            logger.warning(f"Request to {url} failed ({status}), retrying in {delay:.1f}s...")
                            await asyncio.sleep(delay)
                            continue
                        return ApiResponse(error=last_error, status=status)

                    if not response.content:
                        return ApiResponse(data=None, status=status)
                    try:
                        return ApiResponse(data=response.json(), status=status)
                    except ValueError:
                        return ApiResponse(error="Invalid JSON response", status=status)

                # Netzwerkfehler / Timeout
                if can_retry:
                    delay = self._retry_delay(attempt)
                    logger.warning(f"Network error for {url} ({last_error}), retrying in {delay:.1f}s...")
                    await asyncio.sleep(delay)

        return ApiResponse(error=last_error, status=last_status)

    async def test_connection(self) -> Dict:
        """
        Test connection against the status endpoint
        Returns: {"success": bool, "version": str?, "error": str?}
        """
        response = await self.get(self.status_path)
        if response.error:
            return {"success": False, "error": response.error}
        data = response.data or {}
        return {"success": True, "version": self._version_from_status(data)}

    @staticmethod
    def _version_from_status(data) -> Optional[str]:
        if isinstance(data, dict):
            return data.get("version") or data.get("Version")
        return None
