"""Tests for nuwax_sdk._core.client module."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from nuwax_sdk._core.client import Dispatcher, OpencodeClient, render_path
from nuwax_sdk.bodies import AppLogBody, SessionPromptBody, text_part
from nuwax_sdk.errors import ApiError, BodyValidationError, TransportError
from nuwax_sdk.routes import ROUTES
from nuwax_sdk.types import DispatcherConfig, ResponseStyle


def _response(status=200, json_body=None, content=b"{}"):
    response = MagicMock()
    response.status_code = status
    response.content = content
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body if json_body is not None else {}
    response.text = content.decode()
    return response


class TestRenderPath:
    def test_no_params(self):
        assert render_path("/session/list") == "/session/list"

    def test_interpolates(self):
        assert render_path("/session/{id}/message/{messageId}", {"id": "abc", "messageId": "m1"}) == (
            "/session/abc/message/m1"
        )

    def test_quotes_segment_once(self):
        assert render_path("/session/{id}", {"id": "a b/c"}) == "/session/a%20b%2Fc"
        assert render_path("/session/{id}", {"id": "a%20b"}) == "/session/a%2520b"

    def test_missing_param(self):
        with pytest.raises(ValueError, match="id"):
            render_path("/session/{id}", {})

    def test_empty_param(self):
        with pytest.raises(ValueError):
            render_path("/session/{id}", {"id": ""})


class TestRouteTable:
    """The route table mirrors the engine API."""

    def test_operation_count(self):
        assert len(ROUTES) == 24

    def test_delete_uses_delete(self):
        assert ROUTES["session.delete"].method == "DELETE"
        assert ROUTES["session.delete"].path == "/session/{id}"

    @pytest.mark.parametrize(
        "name",
        ["session.abort", "session.share", "session.unshare"],
    )
    def test_bodiless_posts(self, name):
        assert ROUTES[name].method == "POST"
        assert not ROUTES[name].takes_body

    def test_gets_take_no_body(self):
        for name, route in ROUTES.items():
            if route.method == "GET":
                assert not route.takes_body, name

    def test_bodies_are_posted(self):
        for name, route in ROUTES.items():
            if route.takes_body:
                assert route.method == "POST", name


class TestDispatcher:
    """Tests for Dispatcher against a stub endpoint."""

    @pytest.mark.asyncio
    async def test_construction_performs_no_io(self):
        with patch("nuwax_sdk._core.client.requests.request") as mock_request:
            Dispatcher(DispatcherConfig("http://127.0.0.1:1"))
            OpencodeClient("http://127.0.0.1:1")
            mock_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_without_body(self, stub_endpoint):
        stub_endpoint.respond("/session/list", 200, [{"id": "s1"}])
        dispatcher = Dispatcher(DispatcherConfig(stub_endpoint.url))

        result = await dispatcher.call("session.list")

        assert result == [{"id": "s1"}]
        assert stub_endpoint.requests == [("GET", "/session/list", None)]

    @pytest.mark.asyncio
    async def test_create_passes_response_through(self, stub_endpoint):
        stub_endpoint.respond("/session/create", 200, {"data": {"id": "s1"}})
        client = OpencodeClient(stub_endpoint.url)

        result = await client.session.create({"parts": [{"text": "hi"}]})

        assert result == {"data": {"id": "s1"}}
        assert stub_endpoint.requests == [
            ("POST", "/session/create", {"parts": [{"text": "hi"}]})
        ]

    @pytest.mark.asyncio
    async def test_message_path_exact(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.message("abc", "m1")

        assert stub_endpoint.requests == [("GET", "/session/abc/message/m1", None)]

    @pytest.mark.asyncio
    async def test_delete_uses_delete_verb(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.delete("s1")

        assert stub_endpoint.requests == [("DELETE", "/session/s1", None)]

    @pytest.mark.asyncio
    async def test_abort_posts_without_body(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.abort("s1")

        assert stub_endpoint.requests == [("POST", "/session/s1/abort", None)]

    @pytest.mark.asyncio
    async def test_prompt_body_aliases(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.prompt(
            "s1", SessionPromptBody(parts=[text_part("hi")], no_reply=True)
        )

        assert stub_endpoint.requests == [
            ("POST", "/session/s1/prompt", {"parts": [{"type": "text", "text": "hi"}], "noReply": True})
        ]

    @pytest.mark.asyncio
    async def test_prompt_accepts_camel_case_mapping(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.prompt(
            "s1", {"parts": [{"text": "hi"}], "outputFormat": "json"}
        )

        assert stub_endpoint.requests[0][2] == {"parts": [{"text": "hi"}], "outputFormat": "json"}

    @pytest.mark.asyncio
    async def test_sends_json_content_type(self):
        with patch("nuwax_sdk._core.client.requests.request", return_value=_response()) as mock_request:
            client = OpencodeClient("http://127.0.0.1:4096")
            await client.app.log({"service": "sdk", "level": "info", "message": "hello"})

        args, kwargs = mock_request.call_args
        assert args == ("POST", "http://127.0.0.1:4096/app/log")
        assert kwargs["json"] == {"service": "sdk", "level": "info", "message": "hello"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_empty_success_body(self, stub_endpoint):
        stub_endpoint.respond("/session/s1/share", 204, None)
        client = OpencodeClient(stub_endpoint.url)

        assert await client.session.share("s1") == {}

    @pytest.mark.asyncio
    async def test_response_styles_return_same_body(self, stub_endpoint):
        stub_endpoint.respond("/config", 200, {"model": "x"})

        raw = OpencodeClient(stub_endpoint.url, response_style=ResponseStyle.RAW)
        unwrapped = OpencodeClient(stub_endpoint.url, response_style="unwrapped")

        assert await raw.config.get() == await unwrapped.config.get() == {"model": "x"}


class TestDispatcherErrors:
    """Tests for throw_on_error and transport failures."""

    @pytest.mark.asyncio
    async def test_500_raises_api_error(self, stub_endpoint):
        stub_endpoint.respond("/session/s1", 500, {"error": "boom"})
        client = OpencodeClient(stub_endpoint.url, throw_on_error=True)

        with pytest.raises(ApiError) as exc_info:
            await client.session.get("s1")

        assert exc_info.value.status == 500
        assert exc_info.value.body == {"error": "boom"}
        assert exc_info.value.url.endswith("/session/s1")

    @pytest.mark.asyncio
    async def test_500_returns_empty_when_not_throwing(self, stub_endpoint):
        stub_endpoint.respond("/session/s1", 500, {"error": "boom"})
        client = OpencodeClient(stub_endpoint.url, throw_on_error=False)

        assert await client.session.get("s1") == {}

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        response = _response(200, json_body=ValueError("not json"), content=b"<html>")
        with patch("nuwax_sdk._core.client.requests.request", return_value=response):
            with pytest.raises(ApiError) as exc_info:
                await OpencodeClient("http://h:1").path.get()
            assert exc_info.value.body == "<html>"

            assert await OpencodeClient("http://h:1", throw_on_error=False).path.get() == {}

    @pytest.mark.asyncio
    async def test_connection_refused_raises_transport_error(self, free_port):
        client = OpencodeClient(f"http://127.0.0.1:{free_port}", throw_on_error=False)

        with pytest.raises(TransportError):
            await client.health()

    @pytest.mark.asyncio
    async def test_request_exception_wrapped(self):
        with patch(
            "nuwax_sdk._core.client.requests.request",
            side_effect=requests.ConnectionError("reset"),
        ):
            with pytest.raises(TransportError, match="reset"):
                await OpencodeClient("http://h:1").project.list()


class TestBodyValidation:
    """Bodies are checked before anything is sent."""

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self):
        with patch("nuwax_sdk._core.client.requests.request") as mock_request:
            client = OpencodeClient("http://h:1")
            with pytest.raises(BodyValidationError) as exc_info:
                await client.session.command("s1", {"command": "ls", "force": True})

            assert exc_info.value.operation == "session.command"
            mock_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_required_field(self):
        client = OpencodeClient("http://h:1")
        with pytest.raises(BodyValidationError):
            await client.session.shell("s1", {})

    @pytest.mark.asyncio
    async def test_invalid_log_level(self):
        client = OpencodeClient("http://h:1")
        with pytest.raises(BodyValidationError):
            await client.app.log({"service": "sdk", "level": "loud", "message": "x"})

    @pytest.mark.asyncio
    async def test_body_on_bodiless_operation(self):
        dispatcher = Dispatcher(DispatcherConfig("http://h:1"))
        with pytest.raises(BodyValidationError):
            await dispatcher.call("session.abort", {"id": "s1"}, {"reason": "x"})

    @pytest.mark.asyncio
    async def test_non_mapping_body(self):
        client = OpencodeClient("http://h:1")
        with pytest.raises(BodyValidationError):
            await client.session.update("s1", ["title"])

    @pytest.mark.asyncio
    async def test_arbitrary_body_passed_through(self, stub_endpoint):
        client = OpencodeClient(stub_endpoint.url)

        await client.session.update("s1", {"title": "renamed", "anything": [1, 2]})
        await client.session.summarize("s1")

        assert stub_endpoint.requests == [
            ("POST", "/session/s1", {"title": "renamed", "anything": [1, 2]}),
            ("POST", "/session/s1/summarize", {}),
        ]

    @pytest.mark.asyncio
    async def test_model_instance_accepted(self):
        with patch("nuwax_sdk._core.client.requests.request", return_value=_response()) as mock_request:
            await OpencodeClient("http://h:1").app.log(
                AppLogBody(service="sdk", level="warn", message="careful")
            )
        assert mock_request.call_args[1]["json"] == {
            "service": "sdk", "level": "warn", "message": "careful",
        }

    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        dispatcher = Dispatcher(DispatcherConfig("http://h:1"))
        with pytest.raises(KeyError):
            await dispatcher.call("session.explode")


class TestOpencodeClientSurface:
    """Every route group method issues the documented call."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "invoke, method, path",
        [
            (lambda c: c.health(), "GET", "/global/health"),
            (lambda c: c.app.agents(), "GET", "/app/agents"),
            (lambda c: c.project.list(), "GET", "/project/list"),
            (lambda c: c.project.current(), "GET", "/project/current"),
            (lambda c: c.path.get(), "GET", "/path"),
            (lambda c: c.config.get(), "GET", "/config"),
            (lambda c: c.config.providers(), "GET", "/config/providers"),
            (lambda c: c.session.get("s1"), "GET", "/session/s1"),
            (lambda c: c.session.children("s1"), "GET", "/session/s1/children"),
            (lambda c: c.session.init("s1", {"modelID": "m"}), "POST", "/session/s1/init"),
            (lambda c: c.session.unshare("s1"), "POST", "/session/s1/unshare"),
            (lambda c: c.session.messages("s1"), "GET", "/session/s1/messages"),
            (lambda c: c.session.command("s1", {"command": "/init"}), "POST", "/session/s1/command"),
            (lambda c: c.session.shell("s1", {"command": "ls"}), "POST", "/session/s1/shell"),
        ],
    )
    async def test_route(self, invoke, method, path):
        with patch("nuwax_sdk._core.client.requests.request", return_value=_response()) as mock_request:
            await invoke(OpencodeClient("http://127.0.0.1:4096"))

        args = mock_request.call_args[0]
        assert args == (method, f"http://127.0.0.1:4096{path}")

    def test_repr(self):
        assert repr(OpencodeClient("http://h:1/")) == "OpencodeClient(base_url='http://h:1')"
