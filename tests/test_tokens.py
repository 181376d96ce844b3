"""Tests for the token broker client against a real aiohttp app."""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from callroom.errors import BrokerError
from callroom.tokens import TokenBrokerClient


def _make_app(*, media_status: int = 200, media_body: object | None = None) -> tuple[web.Application, list]:
    seen: list[tuple[str, dict]] = []
    app = web.Application()

    async def rtm_token(request: web.Request) -> web.Response:
        seen.append((request.path, dict(request.query)))
        return web.json_response({"token": f"rtm-{request.query['uid']}"})

    async def media_token(request: web.Request) -> web.Response:
        seen.append((request.path, dict(request.query)))
        if media_status != 200:
            return web.Response(status=media_status, text="token service down")
        if media_body is not None:
            return web.json_response(media_body)
        q = request.query
        return web.json_response({"token": f"media-{q['channelName']}-{q['uid']}"})

    app.router.add_get("/rtm-token", rtm_token)
    app.router.add_get("/media-token", media_token)
    return app, seen


async def _fetch(app: web.Application) -> object:
    async with test_utils.TestServer(app) as server:
        client = TokenBrokerClient(f"http://{server.host}:{server.port}/")
        return await client.fetch_credentials("u1", "standup")


class TestTokenBrokerClient:
    def test_fetches_both_tokens(self):
        app, seen = _make_app()
        pair = asyncio.run(_fetch(app))
        assert pair.messaging_token == "rtm-u1"
        assert pair.media_token == "media-standup-u1"
        assert seen == [
            ("/rtm-token", {"uid": "u1"}),
            ("/media-token", {"channelName": "standup", "uid": "u1"}),
        ]

    def test_http_error_raises_broker_error(self):
        app, _ = _make_app(media_status=500)
        with pytest.raises(BrokerError) as excinfo:
            asyncio.run(_fetch(app))
        assert excinfo.value.status == 500
        assert "token service down" in str(excinfo.value)

    @pytest.mark.parametrize("body", [{"tok": "x"}, {"token": ""}, {"token": 7}, ["token"]])
    def test_missing_token_field_raises_broker_error(self, body):
        app, _ = _make_app(media_body=body)
        with pytest.raises(BrokerError, match="no token field"):
            asyncio.run(_fetch(app))

    def test_unreachable_server_raises_broker_error(self):
        async def run():
            # Bind and release a port so nothing is listening on it.
            async with test_utils.TestServer(web.Application()) as server:
                url = f"http://{server.host}:{server.port}"
            await TokenBrokerClient(url).fetch_credentials("u1", "standup")

        with pytest.raises(BrokerError, match="request failed"):
            asyncio.run(run())

    def test_credentials_repr_hides_tokens(self):
        app, _ = _make_app()
        pair = asyncio.run(_fetch(app))
        assert "rtm-u1" not in repr(pair)

    def test_undecodable_body_raises_broker_error(self):
        app = web.Application()

        async def garbled(request: web.Request) -> web.Response:
            return web.Response(body=b'{"token": "\xff\xfe"}', content_type="application/json", charset="utf-8")

        app.router.add_get("/rtm-token", garbled)
        with pytest.raises(BrokerError, match="non-JSON body"):
            asyncio.run(_fetch(app))
