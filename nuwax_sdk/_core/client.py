"""
HTTP client for the engine API.

The Dispatcher turns an operation name from the route table into one JSON
HTTP call. OpencodeClient groups those operations the way the engine API
does (app, project, path, config, session).

Usage:
    client = OpencodeClient("http://127.0.0.1:4096")
    session = await client.session.create({"parts": [text_part("hi")]})
    reply = await client.session.prompt(session_id, {"parts": [text_part("hello")]})
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote

import pydantic
import requests

from nuwax_sdk._core.version import DEFAULT_BASE_URL
from nuwax_sdk.bodies import _Body
from nuwax_sdk.errors import ApiError, BodyValidationError, TransportError
from nuwax_sdk.routes import ARBITRARY, ROUTES, Route
from nuwax_sdk.types import DispatcherConfig, ResponseStyle

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

_HEADERS = {"Content-Type": "application/json"}

Body = Optional[Union[Mapping[str, Any], _Body]]


def render_path(template: str, params: Optional[Mapping[str, str]] = None) -> str:
    """
    Interpolate path parameters into a route template.

    Each value is quoted once as a single URL segment.

    Raises:
        ValueError: If a placeholder has no value
    """
    params = params or {}

    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in params or params[key] is None or params[key] == "":
            raise ValueError(f"Missing path parameter '{key}' for {template}")
        return quote(str(params[key]), safe="")

    return _PLACEHOLDER.sub(substitute, template)


class Dispatcher:
    """
    Sends engine API operations as JSON HTTP calls.

    Stateless apart from its immutable config: calls are independent,
    never retried, and may run concurrently.
    """

    def __init__(self, config: DispatcherConfig) -> None:
        self._config = config

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def call(
        self,
        name: str,
        path_params: Optional[Mapping[str, str]] = None,
        body: Body = None,
    ) -> Any:
        """
        Perform one operation from the route table.

        Args:
            name: Operation name (e.g., "session.prompt")
            path_params: Values for the route's path placeholders
            body: Request body (mapping or body model)

        Returns:
            Parsed JSON response, or {} for an empty response and for
            failed calls when throw_on_error is disabled

        Raises:
            KeyError: Unknown operation
            BodyValidationError: Body does not fit the operation
            ApiError: Non-2xx status (only with throw_on_error)
            TransportError: Endpoint unreachable
        """
        route = ROUTES[name]
        path = render_path(route.path, path_params)
        payload = self._prepare_body(name, route, body)
        url = f"{self._config.base_url}{path}"

        loop = asyncio.get_event_loop()
        response = await loop.run_in_executor(
            None, self._send_sync, route.method, url, payload
        )
        return self._handle_response(route.method, url, response)

    def _prepare_body(self, name: str, route: Route, body: Body) -> Optional[dict]:
        """Validate a body against the route's body spec."""
        if route.body is None:
            if body is not None:
                raise BodyValidationError(name, "operation does not take a body")
            return None

        if route.body is ARBITRARY:
            if body is None:
                return {}
            if isinstance(body, _Body):
                return body.to_json()
            if not isinstance(body, Mapping):
                raise BodyValidationError(name, f"expected a JSON object, got {type(body).__name__}")
            return dict(body)

        model = route.body
        if isinstance(body, model):
            return body.to_json()
        if body is not None and not isinstance(body, Mapping):
            raise BodyValidationError(name, f"expected a JSON object, got {type(body).__name__}")

        try:
            return model.model_validate(dict(body or {})).to_json()
        except pydantic.ValidationError as e:
            raise BodyValidationError(name, str(e)) from e

    @staticmethod
    def _send_sync(method: str, url: str, payload: Optional[dict]) -> requests.Response:
        """Sync implementation of the HTTP exchange."""
        try:
            return requests.request(method, url, json=payload, headers=_HEADERS)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    def _handle_response(self, method: str, url: str, response: requests.Response) -> Any:
        """Apply throw_on_error and decode the JSON body."""
        status = response.status_code

        if not 200 <= status < 300:
            if self._config.throw_on_error:
                raise ApiError(
                    status,
                    f"{method} {url} failed with status {status}",
                    body=_error_body(response),
                    url=url,
                )
            logger.debug(f"{method} {url} returned {status}, returning empty result")
            return {}

        if not response.content:
            return {}

        try:
            data = response.json()
        except ValueError as e:
            if self._config.throw_on_error:
                raise ApiError(
                    status,
                    f"{method} {url} returned a non-JSON body",
                    body=response.text,
                    url=url,
                ) from e
            return {}

        # RAW and UNWRAPPED both hand back the parsed body for now
        return data


def _error_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


# =============================================================================
# Route groups
# =============================================================================


class _RouteGroup:
    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher


class AppRoutes(_RouteGroup):
    """Engine application endpoints."""

    async def log(self, body: Body) -> Any:
        """Write an entry ({service, level, message}) to the engine log."""
        return await self._dispatcher.call("app.log", body=body)

    async def agents(self) -> Any:
        return await self._dispatcher.call("app.agents")


class ProjectRoutes(_RouteGroup):
    async def list(self) -> Any:
        return await self._dispatcher.call("project.list")

    async def current(self) -> Any:
        return await self._dispatcher.call("project.current")


class PathRoutes(_RouteGroup):
    async def get(self) -> Any:
        return await self._dispatcher.call("path.get")


class ConfigRoutes(_RouteGroup):
    async def get(self) -> Any:
        return await self._dispatcher.call("config.get")

    async def providers(self) -> Any:
        return await self._dispatcher.call("config.providers")


class SessionRoutes(_RouteGroup):
    """
    Session endpoints.

    Session identity lives entirely in the id argument; the client keeps
    no per-session state.
    """

    async def list(self) -> Any:
        return await self._dispatcher.call("session.list")

    async def get(self, id: str) -> Any:
        return await self._dispatcher.call("session.get", {"id": id})

    async def children(self, id: str) -> Any:
        return await self._dispatcher.call("session.children", {"id": id})

    async def create(self, body: Body = None) -> Any:
        """Create a session. Body: {parts}."""
        return await self._dispatcher.call("session.create", body=body)

    async def delete(self, id: str) -> Any:
        return await self._dispatcher.call("session.delete", {"id": id})

    async def update(self, id: str, body: Body) -> Any:
        return await self._dispatcher.call("session.update", {"id": id}, body)

    async def init(self, id: str, body: Body = None) -> Any:
        return await self._dispatcher.call("session.init", {"id": id}, body)

    async def abort(self, id: str) -> Any:
        return await self._dispatcher.call("session.abort", {"id": id})

    async def share(self, id: str) -> Any:
        return await self._dispatcher.call("session.share", {"id": id})

    async def unshare(self, id: str) -> Any:
        return await self._dispatcher.call("session.unshare", {"id": id})

    async def summarize(self, id: str, body: Body = None) -> Any:
        return await self._dispatcher.call("session.summarize", {"id": id}, body)

    async def messages(self, id: str) -> Any:
        return await self._dispatcher.call("session.messages", {"id": id})

    async def message(self, id: str, message_id: str) -> Any:
        return await self._dispatcher.call(
            "session.message", {"id": id, "messageId": message_id}
        )

    async def prompt(self, id: str, body: Body) -> Any:
        """Send a prompt. Body: {parts, noReply?, outputFormat?}."""
        return await self._dispatcher.call("session.prompt", {"id": id}, body)

    async def command(self, id: str, body: Body) -> Any:
        return await self._dispatcher.call("session.command", {"id": id}, body)

    async def shell(self, id: str, body: Body) -> Any:
        return await self._dispatcher.call("session.shell", {"id": id}, body)


class OpencodeClient:
    """
    Typed client for an engine's HTTP API.

    Construction performs no I/O; make sure the engine is reachable first
    (create_opencode does this for you).

    Attributes:
        app, project, path, config, session: Route groups
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        response_style: Union[ResponseStyle, str] = ResponseStyle.RAW,
        throw_on_error: bool = True,
    ) -> None:
        self._dispatcher = Dispatcher(
            DispatcherConfig(
                base_url=base_url,
                response_style=ResponseStyle(response_style),
                throw_on_error=throw_on_error,
            )
        )
        self.app = AppRoutes(self._dispatcher)
        self.project = ProjectRoutes(self._dispatcher)
        self.path = PathRoutes(self._dispatcher)
        self.config = ConfigRoutes(self._dispatcher)
        self.session = SessionRoutes(self._dispatcher)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def base_url(self) -> str:
        return self._dispatcher.base_url

    async def health(self) -> Any:
        """GET /global/health."""
        return await self._dispatcher.call("health")

    def __repr__(self) -> str:
        return f"OpencodeClient(base_url={self.base_url!r})"
