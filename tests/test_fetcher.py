"""
Unit tests for the fetcher module.

Tests cover successful retrieval, error mapping, and session management.
"""

import asyncio
from unittest.mock import MagicMock, patch

import aiohttp
import pytest
from aioresponses import aioresponses

from gator.errors import FetchError, HttpStatusError, NetworkError, ReadError
from gator.fetcher import FeedFetcher
from gator.rss_parser import parse_feed

FEED_URL = "https://example.com/feed.xml"


class TestFeedFetcherInit:
    """Tests for FeedFetcher initialization."""

    def test_default_values(self) -> None:
        """Test FeedFetcher default values."""
        fetcher = FeedFetcher()

        assert fetcher.timeout == 30
        assert fetcher.user_agent == "gator"
        assert fetcher.proxy_url is None
        assert fetcher._session is None

    def test_custom_values(self) -> None:
        """Test FeedFetcher with custom values."""
        fetcher = FeedFetcher(
            timeout=5,
            user_agent="Custom/2.0",
            proxy_url="socks5://localhost:1080",
        )

        assert fetcher.timeout == 5
        assert fetcher.user_agent == "Custom/2.0"
        assert fetcher.proxy_url == "socks5://localhost:1080"


class TestFeedFetcherFetch:
    """Tests for HTTP retrieval."""

    async def test_fetch_success(self, sample_rss_content: str) -> None:
        """Test that a body with a declared charset is returned as text."""
        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(
                    FEED_URL,
                    body=sample_rss_content,
                    content_type="application/rss+xml; charset=utf-8",
                )

                content = await fetcher.fetch(FEED_URL)

        assert content == sample_rss_content

    async def test_fetch_without_charset_returns_bytes(self) -> None:
        """Test that a body without a declared charset is left undecoded."""
        body = b"<rss><channel/></rss>"

        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, body=body, content_type="application/rss+xml")

                content = await fetcher.fetch(FEED_URL)

        assert content == body

    async def test_latin1_feed_without_charset(self) -> None:
        """Test that the XML declaration decides the encoding when the header is silent."""
        body = (
            '<?xml version="1.0" encoding="ISO-8859-1"?>'
            "<rss><channel><title>café</title><link>https://example.com</link>"
            "<description>Menú del día</description></channel></rss>"
        ).encode("latin-1")

        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, body=body, content_type="application/rss+xml")

                content = await fetcher.fetch(FEED_URL)

        doc = parse_feed(content, source=FEED_URL)

        assert doc.channel_title == "café"
        assert doc.channel_description == "Menú del día"

    async def test_sends_user_agent(self) -> None:
        """Test that the identifying User-Agent header is sent."""
        async with FeedFetcher(user_agent="gator") as fetcher:
            session = await fetcher._get_session()

            assert session.headers["User-Agent"] == "gator"

    async def test_http_404(self) -> None:
        """Test that a 404 raises HttpStatusError carrying the status."""
        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, status=404, reason="Not Found")

                with pytest.raises(HttpStatusError) as exc_info:
                    await fetcher.fetch(FEED_URL)

        assert exc_info.value.status == 404
        assert exc_info.value.reason == "Not Found"
        assert exc_info.value.url == FEED_URL
        assert exc_info.value.phase == "fetch"
        assert "404" in str(exc_info.value)

    async def test_http_500(self) -> None:
        """Test that server errors raise HttpStatusError."""
        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, status=500)

                with pytest.raises(HttpStatusError) as exc_info:
                    await fetcher.fetch(FEED_URL)

        assert exc_info.value.status == 500

    async def test_connection_error(self) -> None:
        """Test that transport failures raise NetworkError with the cause."""
        cause = aiohttp.ClientConnectionError("Connection refused")

        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, exception=cause)

                with pytest.raises(NetworkError) as exc_info:
                    await fetcher.fetch(FEED_URL)

        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause

    async def test_timeout(self) -> None:
        """Test that timeouts are reported as NetworkError."""
        async with FeedFetcher(timeout=1) as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, exception=asyncio.TimeoutError())

                with pytest.raises(NetworkError):
                    await fetcher.fetch(FEED_URL)

    async def test_single_attempt(self) -> None:
        """Test that a failed request is not retried."""
        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(FEED_URL, exception=aiohttp.ClientError("boom"))
                m.get(FEED_URL, body="<rss/>", content_type="text/xml; charset=utf-8")

                with pytest.raises(NetworkError):
                    await fetcher.fetch(FEED_URL)

                # The second registered response is still available
                assert await fetcher.fetch(FEED_URL) == "<rss/>"

    async def test_read_error(self) -> None:
        """Test that a body that cannot be decoded raises ReadError."""
        async with FeedFetcher() as fetcher:
            with aioresponses() as m:
                m.get(
                    FEED_URL,
                    body=b"\xff\xfe\xfa",
                    content_type="text/xml; charset=utf-8",
                )

                with pytest.raises(ReadError) as exc_info:
                    await fetcher.fetch(FEED_URL)

        assert isinstance(exc_info.value, FetchError)


class TestFeedFetcherSession:
    """Tests for HTTP session management."""

    async def test_session_lazy_creation(self) -> None:
        """Test that session is created lazily."""
        fetcher = FeedFetcher()

        assert fetcher._session is None

        session = await fetcher._get_session()

        assert fetcher._session is session
        await fetcher.close()

    async def test_close_idempotent(self) -> None:
        """Test that close can be called multiple times."""
        fetcher = FeedFetcher()
        await fetcher._get_session()

        await fetcher.close()
        await fetcher.close()

        assert fetcher._session is None

    async def test_proxy_creates_connector(self) -> None:
        """Test that proxy URL creates a ProxyConnector."""
        fetcher = FeedFetcher(proxy_url="socks5://localhost:1080")

        with patch("gator.fetcher.ProxyConnector") as mock_connector:
            mock_connector.from_url.return_value = MagicMock()

            with patch("gator.fetcher.aiohttp.ClientSession") as mock_session:
                await fetcher._get_session()

            mock_connector.from_url.assert_called_once_with("socks5://localhost:1080")
            assert mock_session.call_args.kwargs["connector"] is mock_connector.from_url.return_value
