"""
HTTP layer shared by the formula fetcher and the bottle downloader.

Wraps an httpx.AsyncClient with retries, a per-host circuit breaker and
request statistics.
"""

import asyncio
import hashlib
import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

import aiofiles
import httpx

from brewver import __version__
from brewver.core.errors import ChecksumMismatchError, DownloadError
from brewver.core.resilience import RETRY_STATUSES, CircuitBreaker, ExponentialBackoff

logger = logging.getLogger(__name__)

USER_AGENT = f"brewver/{__version__}"

ProgressCallback = Callable[[int, int | None], None]


class HttpSession:
    """Resilient GET requests and streaming downloads."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        backoff: ExponentialBackoff | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=60.0),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self.backoff = backoff or ExponentialBackoff(base_delay=1.0, max_delay=30.0, max_retries=3)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, timeout=120.0)

        self.stats: dict = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "bytes_downloaded": 0,
            "hosts": defaultdict(lambda: {"success": 0, "fail": 0}),
        }

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ──────────────────────────────────────────────
    # Bookkeeping
    # ──────────────────────────────────────────────

    def _check_circuit(self, url: str) -> str:
        host = httpx.URL(url).host
        if self.circuit_breaker.is_open(host):
            raise DownloadError(f"Skipping {url}: too many failures talking to {host}")
        self.stats["total_requests"] += 1
        return host

    def _record_success(self, host: str, size: int) -> None:
        self.stats["successful_requests"] += 1
        self.stats["bytes_downloaded"] += size
        self.stats["hosts"][host]["success"] += 1
        self.circuit_breaker.record_success(host)

    def _record_failure(self, host: str, trip: bool = True) -> None:
        self.stats["failed_requests"] += 1
        self.stats["hosts"][host]["fail"] += 1
        if trip:
            self.circuit_breaker.record_failure(host)

    async def _wait(self, attempt: int, reason: str, retry_after: str | None = None) -> None:
        delay = self.backoff.calculate_delay(attempt, retry_after)
        logger.debug(f"{reason}, retry {attempt + 1} after {delay:.1f}s")
        await asyncio.sleep(delay)

    # ──────────────────────────────────────────────
    # Requests
    # ──────────────────────────────────────────────

    async def get(self, url: str, headers: dict | None = None, attempt: int = 0) -> httpx.Response:
        """GET a URL, retrying transient failures. Non-2xx answers raise DownloadError."""
        host = self._check_circuit(url)

        try:
            resp = await self.client.get(url, headers=headers)
        except httpx.TransportError as e:
            self._record_failure(host)
            if self.backoff.should_retry(attempt):
                await self._wait(attempt, f"Request to {host} failed ({type(e).__name__})")
                return await self.get(url, headers, attempt + 1)
            raise DownloadError(f"Request failed after {attempt + 1} attempts: {url} ({e})") from e

        if resp.is_success:
            self._record_success(host, len(resp.content))
            return resp

        transient = resp.status_code in RETRY_STATUSES
        self._record_failure(host, trip=transient)
        if transient and self.backoff.should_retry(attempt):
            await self._wait(
                attempt, f"{host} answered {resp.status_code}", resp.headers.get("Retry-After")
            )
            return await self.get(url, headers, attempt + 1)

        raise DownloadError(f"GET {url} returned HTTP {resp.status_code}")

    async def download(
        self,
        url: str,
        dest: Path,
        sha256: str | None = None,
        headers: dict | None = None,
        on_progress: ProgressCallback | None = None,
        attempt: int = 0,
    ) -> Path:
        """
        Stream a URL into dest, hashing it on the way.

        Args:
            url: File to fetch.
            dest: Target path; overwritten on every attempt.
            sha256: Expected hex digest. The file is removed on mismatch.
            headers: Extra request headers.
            on_progress: Called with (bytes in chunk, total size or None).

        Returns:
            dest
        """
        host = self._check_circuit(url)
        digest = hashlib.sha256()
        size = 0
        status = 0
        retry_after = None

        try:
            async with self.client.stream("GET", url, headers=headers) as resp:
                status = resp.status_code
                if resp.is_success:
                    total = int(resp.headers.get("Content-Length", 0)) or None
                    async with aiofiles.open(dest, "wb") as f:
                        async for chunk in resp.aiter_bytes():
                            digest.update(chunk)
                            await f.write(chunk)
                            size += len(chunk)
                            if on_progress:
                                on_progress(len(chunk), total)
                else:
                    retry_after = resp.headers.get("Retry-After")
        except httpx.TransportError as e:
            self._record_failure(host)
            if self.backoff.should_retry(attempt):
                await self._wait(attempt, f"Download from {host} failed ({type(e).__name__})")
                return await self.download(url, dest, sha256, headers, on_progress, attempt + 1)
            raise DownloadError(f"Download failed after {attempt + 1} attempts: {url} ({e})") from e

        if not 200 <= status < 300:
            transient = status in RETRY_STATUSES
            self._record_failure(host, trip=transient)
            if transient and self.backoff.should_retry(attempt):
                await self._wait(attempt, f"{host} answered {status}", retry_after)
                return await self.download(url, dest, sha256, headers, on_progress, attempt + 1)
            raise DownloadError(f"GET {url} returned HTTP {status}")

        self._record_success(host, size)
        logger.debug(f"Downloaded {size} bytes to {dest}")

        actual = digest.hexdigest()
        if sha256 and actual != sha256.lower():
            dest.unlink(missing_ok=True)
            raise ChecksumMismatchError(dest, sha256.lower(), actual)

        return dest
