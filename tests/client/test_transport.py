"""Tests for the aiohttp transport, including end-to-end runs against a local server."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from aiohttp import test_utils, web
from fakes import FakeClock
from multidict import CIMultiDict
from yarl import URL

from hubclient.client.errors import StatusError
from hubclient.client.rest_client import HubClient
from hubclient.client.transport import (
    AiohttpTransport,
    InsecureRedirectError,
    reject_insecure_redirect,
)
from hubclient.client.types import API_VERSION_HEADER, ClientConfig, Method


class TestAiohttpTransport:
    """Tests for AiohttpTransport with a mocked session."""

    @pytest.fixture
    def mock_response(self) -> MagicMock:
        response = MagicMock()
        response.status = 200
        response.headers = {"Content-Type": "application/json"}
        response.url = URL("https://api.github.com/zen")
        response.read = AsyncMock(return_value=b'"Design for failure."')
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        return response

    @pytest.mark.asyncio
    async def test_send_reads_body(self, mock_response: MagicMock) -> None:
        transport = AiohttpTransport(ClientConfig())

        with patch.object(aiohttp.ClientSession, "request", return_value=mock_response) as request:
            response = await transport.send(Method.GET, URL("https://api.github.com/zen"))

        assert response.status == 200
        assert response.json() == "Design for failure."
        assert response.url == URL("https://api.github.com/zen")
        _, kwargs = request.call_args
        assert kwargs["data"] is None
        assert kwargs["headers"] is None

        await transport.close()

    @pytest.mark.asyncio
    async def test_send_json_body(self, mock_response: MagicMock) -> None:
        transport = AiohttpTransport(ClientConfig())

        with patch.object(aiohttp.ClientSession, "request", return_value=mock_response) as request:
            await transport.send(Method.POST, URL("https://api.github.com/x"), b'{"a":1}')

        args, kwargs = request.call_args
        assert args[0] == "POST"
        assert kwargs["data"] == b'{"a":1}'
        assert kwargs["headers"] == {"Content-Type": "application/json"}

        await transport.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        transport = AiohttpTransport(ClientConfig())
        await transport.close()
        await transport.close()


class TestInsecureRedirects:
    """Redirects to plain HTTP are refused when HTTPS is required."""

    @staticmethod
    def redirect_params(location: str) -> aiohttp.TraceRequestRedirectParams:
        response = MagicMock()
        response.headers = CIMultiDict({"Location": location})
        return aiohttp.TraceRequestRedirectParams(
            method="GET",
            url=URL("https://api.github.com/repos/acme/widgets"),
            headers=CIMultiDict(),
            response=response,
        )

    @pytest.mark.asyncio
    async def test_http_location_rejected(self) -> None:
        params = self.redirect_params("http://api.github.com/repositories/1")
        with pytest.raises(InsecureRedirectError) as exc_info:
            await reject_insecure_redirect(MagicMock(), MagicMock(), params)
        assert exc_info.value.location == URL("http://api.github.com/repositories/1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "location", ["https://api.github.com/repositories/1", "/repositories/1"]
    )
    async def test_https_location_allowed(self, location: str) -> None:
        await reject_insecure_redirect(MagicMock(), MagicMock(), self.redirect_params(location))

    @pytest.mark.asyncio
    async def test_hook_installed_only_when_https_only(self) -> None:
        strict = AiohttpTransport(ClientConfig())
        relaxed = AiohttpTransport(ClientConfig(https_only=False))

        strict_session = await strict._get_session()
        relaxed_session = await relaxed._get_session()

        assert any(
            reject_insecure_redirect in tc.on_request_redirect
            for tc in strict_session.trace_configs
        )
        assert relaxed_session.trace_configs == []

        await strict.close()
        await relaxed.close()

    @pytest.mark.asyncio
    async def test_redirect_not_followed(self) -> None:
        hits: list[str] = []

        async def moved(request: web.Request) -> web.Response:
            raise web.HTTPFound(str(request.url.with_path("/zen")))

        async def zen(request: web.Request) -> web.Response:
            hits.append(request.path)
            return web.json_response("Keep it logically awesome.")

        app = web.Application()
        app.router.add_get("/moved", moved)
        app.router.add_get("/zen", zen)

        async with test_utils.TestServer(app) as server:
            transport = AiohttpTransport(ClientConfig(token="ghp_localtesttoken"))
            with pytest.raises(InsecureRedirectError):
                await transport.send(Method.GET, server.make_url("/moved"))
            await transport.close()

        assert hits == []


def make_app(hits: dict[str, int], seen_headers: list[CIMultiDict[str]]) -> web.Application:
    async def repos(request: web.Request) -> web.Response:
        seen_headers.append(request.headers.copy())
        page = int(request.query.get("page", "1"))
        headers = {}
        if page < 3:
            headers["Link"] = f'</orgs/acme/repos?page={page + 1}>; rel="next"'
        return web.json_response([{"id": page * 10}, {"id": page * 10 + 1}], headers=headers)

    async def flaky(request: web.Request) -> web.Response:
        hits["flaky"] = hits.get("flaky", 0) + 1
        if hits["flaky"] < 3:
            return web.json_response({"message": "Server Error"}, status=502)
        return web.json_response({"ok": True})

    async def create(request: web.Request) -> web.Response:
        payload = await request.json()
        return web.json_response({"number": 1, **payload}, status=201)

    async def missing(request: web.Request) -> web.Response:
        return web.json_response(
            {"message": "Not Found", "documentation_url": "https://docs.github.com/rest"},
            status=404,
        )

    app = web.Application()
    app.router.add_get("/orgs/acme/repos", repos)
    app.router.add_get("/flaky", flaky)
    app.router.add_post("/repos/acme/widgets/issues", create)
    app.router.add_get("/missing", missing)
    return app


class TestEndToEnd:
    """HubClient with the real transport against a local aiohttp server."""

    @pytest.mark.asyncio
    async def test_pagination_retries_and_errors(self) -> None:
        hits: dict[str, int] = {}
        seen_headers: list[CIMultiDict[str]] = []
        clock = FakeClock()

        async with test_utils.TestServer(make_app(hits, seen_headers)) as server:
            config = ClientConfig(
                api_url=str(server.make_url("/")),
                token="ghp_localtesttoken",
                https_only=False,
            )
            async with HubClient(config, sleep=clock.sleep) as client:
                repos = [repo async for repo in client.paginate("/orgs/acme/repos")]
                assert [repo["id"] for repo in repos] == [10, 11, 20, 21, 30, 31]

                assert await client.get("/flaky") == {"ok": True}
                assert hits["flaky"] == 3
                assert clock.sleeps[0] == pytest.approx(0.1)

                created = await client.post("repos/acme/widgets/issues", {"title": "Bug"})
                assert created == {"number": 1, "title": "Bug"}

                with pytest.raises(StatusError) as exc_info:
                    await client.get("/missing")
                assert exc_info.value.status == 404
                assert exc_info.value.body is not None
                assert '  "message": "Not Found"' in exc_info.value.body

        assert len(seen_headers) == 3
        first = seen_headers[0]
        assert first["Authorization"] == "Bearer ghp_localtesttoken"
        assert first["Accept"] == "application/vnd.github+json"
        assert first[API_VERSION_HEADER] == "2022-11-28"
