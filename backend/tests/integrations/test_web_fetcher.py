"""Tests for the raw HTML fetcher."""

import httpx

from app.integrations.web_fetcher import WebFetcher

PAGE = """
<html>
  <head><title>Acme</title><style>body { color: red; }</style></head>
  <body>
    <nav>Home | Shop</nav>
    <h1>Acme Outdoor Gear</h1>
    <p>Free shipping on orders over $75.</p>
    <script>track();</script>
  </body>
</html>
"""


def make_fetcher(handler) -> WebFetcher:
    fetcher = WebFetcher(timeout=5, max_chars=1000, user_agent="test-agent")
    fetcher._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), follow_redirects=True
    )
    return fetcher


class TestFetchText:
    async def test_returns_visible_text(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(200, text=PAGE))

        result = await fetcher.fetch_text("https://acme.com")
        await fetcher.close()

        assert result.success is True
        assert result.status_code == 200
        assert "Acme Outdoor Gear" in result.text
        assert "Free shipping on orders over $75." in result.text
        assert "track()" not in result.text
        assert "Home | Shop" not in result.text

    async def test_error_status_fails_without_text(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(404, text=PAGE))

        result = await fetcher.fetch_text("https://acme.com/missing")

        assert result.success is False
        assert result.status_code == 404
        assert result.error == "HTTP 404"
        assert result.text == ""

    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        fetcher = make_fetcher(handler)
        result = await fetcher.fetch_text("https://acme.com")

        assert result.success is False
        assert result.error == "Timed out after 5s"

    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = make_fetcher(handler)
        result = await fetcher.fetch_text("https://acme.com")

        assert result.success is False
        assert result.error.startswith("Request failed")


class TestIsReachable:
    async def test_reachable_on_first_try(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(200))

        assert await fetcher.is_reachable("acme.com") is True

    async def test_falls_back_to_www(self) -> None:
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            assert request.method == "HEAD"
            if request.url.host == "acme.com":
                raise httpx.ConnectError("no dns", request=request)
            return httpx.Response(200)

        fetcher = make_fetcher(handler)

        assert await fetcher.is_reachable("https://acme.com") is True
        assert hosts == ["acme.com", "www.acme.com"]

    async def test_unreachable(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(404))

        assert await fetcher.is_reachable("https://acme.com") is False

    async def test_invalid_url_is_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        fetcher = make_fetcher(handler)

        assert await fetcher.is_reachable("not a url") is False
