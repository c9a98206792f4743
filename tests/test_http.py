"""Tests for the resilient HTTP session."""

import hashlib

import httpx
import pytest

from brewver.core.errors import ChecksumMismatchError, DownloadError
from conftest import make_session


def sequence_handler(*responses):
    """Answer successive requests with the given responses (or raise exceptions)."""
    remaining = list(responses)
    calls = []

    def handler(request):
        calls.append(request)
        item = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(item, Exception):
            raise item
        return item

    handler.calls = calls
    return handler


class TestGet:
    @pytest.mark.asyncio
    async def test_success(self):
        handler = sequence_handler(httpx.Response(200, text="hello"))
        async with make_session(handler) as session:
            resp = await session.get("https://raw.githubusercontent.com/x")
            assert resp.text == "hello"
            assert session.stats["successful_requests"] == 1
            assert session.stats["bytes_downloaded"] == 5

    @pytest.mark.asyncio
    async def test_retries_transient_status(self):
        handler = sequence_handler(
            httpx.Response(503),
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, text="ok"),
        )
        async with make_session(handler) as session:
            resp = await session.get("https://raw.githubusercontent.com/x")
            assert resp.text == "ok"
        assert len(handler.calls) == 3

    @pytest.mark.asyncio
    async def test_retries_connection_errors(self):
        handler = sequence_handler(
            httpx.ConnectError("refused"),
            httpx.Response(200, text="ok"),
        )
        async with make_session(handler) as session:
            resp = await session.get("https://raw.githubusercontent.com/x")
            assert resp.text == "ok"
            assert session.stats["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        handler = sequence_handler(httpx.ConnectError("refused"))
        async with make_session(handler, max_retries=2) as session:
            with pytest.raises(DownloadError, match="after 3 attempts"):
                await session.get("https://raw.githubusercontent.com/x")
        assert len(handler.calls) == 3

    @pytest.mark.asyncio
    async def test_not_found_is_final(self):
        handler = sequence_handler(httpx.Response(404))
        async with make_session(handler) as session:
            with pytest.raises(DownloadError, match="404"):
                await session.get("https://raw.githubusercontent.com/x")
            assert session.circuit_breaker.failures["raw.githubusercontent.com"] == 0
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        handler = sequence_handler(httpx.Response(200))
        async with make_session(handler) as session:
            for _ in range(3):
                session.circuit_breaker.record_failure("ghcr.io")
            with pytest.raises(DownloadError, match="too many failures"):
                await session.get("https://ghcr.io/v2/x")
        assert handler.calls == []


class TestDownload:
    @pytest.mark.asyncio
    async def test_writes_and_verifies(self, tmp_path):
        payload = b"bottle" * 1000
        handler = sequence_handler(httpx.Response(200, content=payload))
        progress = []
        dest = tmp_path / "foo.tar.gz"

        async with make_session(handler) as session:
            result = await session.download(
                "https://ghcr.io/v2/x",
                dest,
                sha256=hashlib.sha256(payload).hexdigest().upper(),
                on_progress=lambda n, total: progress.append((n, total)),
            )

        assert result == dest
        assert dest.read_bytes() == payload
        assert sum(n for n, _ in progress) == len(payload)
        assert progress[0][1] == len(payload)

    @pytest.mark.asyncio
    async def test_checksum_mismatch_removes_file(self, tmp_path):
        handler = sequence_handler(httpx.Response(200, content=b"tampered"))
        dest = tmp_path / "foo.tar.gz"

        async with make_session(handler) as session:
            with pytest.raises(ChecksumMismatchError) as exc_info:
                await session.download("https://ghcr.io/v2/x", dest, sha256="0" * 64)

        assert exc_info.value.actual == hashlib.sha256(b"tampered").hexdigest()
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, tmp_path):
        handler = sequence_handler(
            httpx.ReadTimeout("slow"),
            httpx.Response(502),
            httpx.Response(200, content=b"data"),
        )
        dest = tmp_path / "foo.tar.gz"

        async with make_session(handler) as session:
            await session.download("https://ghcr.io/v2/x", dest, sha256=hashlib.sha256(b"data").hexdigest())

        assert dest.read_bytes() == b"data"
        assert len(handler.calls) == 3

    @pytest.mark.asyncio
    async def test_unauthorized_is_final(self, tmp_path):
        handler = sequence_handler(httpx.Response(401))
        async with make_session(handler) as session:
            with pytest.raises(DownloadError, match="401"):
                await session.download("https://ghcr.io/v2/x", tmp_path / "foo.tar.gz")
        assert len(handler.calls) == 1
