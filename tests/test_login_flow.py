"""Tests for the Nextcloud Login Flow v2 client."""

from typing import List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from collectives_sync.auth.login_flow import (
    LoginFlowDenied,
    LoginFlowState,
    LoginFlowTimeout,
    LoginFlowV2,
)


class FakeLoginServer:
    """Serves the login start and poll endpoints."""

    def __init__(self, pending_polls: int = 0, start_status: int = 200, poll_error: Optional[int] = None,
                 include_server: bool = True):
        self.pending_polls = pending_polls
        self.start_status = start_status
        self.poll_error = poll_error
        self.include_server = include_server
        self.poll_tokens: List[str] = []

        self.app = web.Application()
        self.app.router.add_post("/index.php/login/v2", self.start)
        self.app.router.add_post("/login/v2/poll", self.poll)

    async def start(self, request: web.Request) -> web.Response:
        if self.start_status != 200:
            return web.Response(status=self.start_status)
        origin = str(request.url.origin())
        return web.json_response({
            "poll": {"token": "poll-token", "endpoint": f"{origin}/login/v2/poll"},
            "login": f"{origin}/login/v2/flow/abc"
        })

    async def poll(self, request: web.Request) -> web.Response:
        form = await request.post()
        self.poll_tokens.append(form.get("token"))

        if self.poll_error is not None:
            return web.Response(status=self.poll_error)
        if self.pending_polls > 0:
            self.pending_polls -= 1
            return web.Response(status=404)

        data = {"loginName": "alice", "appPassword": "app-pass"}
        if self.include_server:
            data["server"] = str(request.url.origin())
        return web.json_response(data)


async def start_server(fake: FakeLoginServer) -> TestServer:
    server = TestServer(fake.app)
    await server.start_server()
    return server


class TestLoginFlowV2:
    """State machine and polling behaviour of the browser login."""

    @pytest.mark.asyncio
    async def test_successful_login_after_pending_polls(self):
        fake = FakeLoginServer(pending_polls=2)
        server = await start_server(fake)
        opened = []
        messages = []
        try:
            flow = LoginFlowV2(
                str(server.make_url("/")),
                poll_interval=0,
                max_attempts=5,
                open_browser=opened.append,
                on_status=messages.append
            )
            credentials = await flow.get_credentials()
        finally:
            await server.close()

        assert credentials.username == "alice"
        assert credentials.secret == "app-pass"
        assert not credentials.is_token
        assert flow.state == LoginFlowState.SUCCEEDED
        assert opened == [flow.login_url]
        assert fake.poll_tokens == ["poll-token"] * 3
        assert messages[-1] == "Successfully authenticated with Nextcloud!"
        assert any("Waiting for authentication" in m for m in messages)

    @pytest.mark.asyncio
    async def test_server_url_falls_back_to_configured_url(self):
        fake = FakeLoginServer(include_server=False)
        server = await start_server(fake)
        try:
            url = str(server.make_url("/"))
            flow = LoginFlowV2(url, poll_interval=0, open_browser=lambda _: None)
            credentials = await flow.get_credentials()
        finally:
            await server.close()

        assert credentials.url == url.rstrip('/')

    @pytest.mark.asyncio
    async def test_times_out_after_max_attempts(self):
        fake = FakeLoginServer(pending_polls=100)
        server = await start_server(fake)
        try:
            flow = LoginFlowV2(str(server.make_url("/")), poll_interval=0, max_attempts=3, open_browser=lambda _: None)
            with pytest.raises(LoginFlowTimeout):
                await flow.get_credentials()
        finally:
            await server.close()

        assert flow.state == LoginFlowState.TIMED_OUT
        assert flow.attempts == 3
        assert len(fake.poll_tokens) == 3

    @pytest.mark.asyncio
    async def test_start_failure_is_denied(self):
        server = await start_server(FakeLoginServer(start_status=500))
        try:
            flow = LoginFlowV2(str(server.make_url("/")), poll_interval=0, open_browser=lambda _: None)
            with pytest.raises(LoginFlowDenied):
                await flow.get_credentials()
        finally:
            await server.close()

        assert flow.state == LoginFlowState.DENIED

    @pytest.mark.asyncio
    async def test_poll_error_is_denied(self):
        server = await start_server(FakeLoginServer(poll_error=500))
        try:
            flow = LoginFlowV2(str(server.make_url("/")), poll_interval=0, open_browser=lambda _: None)
            with pytest.raises(LoginFlowDenied):
                await flow.get_credentials()
        finally:
            await server.close()

        assert flow.state == LoginFlowState.DENIED

    @pytest.mark.asyncio
    async def test_browser_failure_does_not_stop_the_flow(self):
        def broken_browser(url):
            raise RuntimeError("no display")

        server = await start_server(FakeLoginServer())
        try:
            flow = LoginFlowV2(str(server.make_url("/")), poll_interval=0, open_browser=broken_browser)
            credentials = await flow.get_credentials()
        finally:
            await server.close()

        assert credentials.username == "alice"

    @pytest.mark.asyncio
    async def test_poll_before_start_is_rejected(self):
        flow = LoginFlowV2("https://cloud.example.com")

        with pytest.raises(LoginFlowDenied):
            await flow.poll_once()

    @pytest.mark.asyncio
    async def test_owned_session_is_closed(self):
        server = await start_server(FakeLoginServer())
        try:
            flow = LoginFlowV2(str(server.make_url("/")), poll_interval=0, open_browser=lambda _: None)
            await flow.get_credentials()
        finally:
            await server.close()

        assert flow.session is None
