"""
Engine API route table.

Every client operation is exactly one HTTP call; this table is the whole
mapping from operation name to verb, path template and accepted body.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Type, Union

from nuwax_sdk.bodies import (
    AppLogBody,
    CommandBody,
    SessionCreateBody,
    SessionPromptBody,
    _Body,
)

# Marker for operations whose body is passed through as any JSON object
ARBITRARY = dict

BodySpec = Optional[Union[Type[_Body], Type[dict]]]


@dataclass(frozen=True)
class Route:
    """HTTP verb, path template and body spec for one operation."""

    method: str
    path: str
    body: BodySpec = None

    @property
    def takes_body(self) -> bool:
        return self.body is not None


ROUTES: Dict[str, Route] = {
    "health": Route("GET", "/global/health"),
    "app.log": Route("POST", "/app/log", AppLogBody),
    "app.agents": Route("GET", "/app/agents"),
    "project.list": Route("GET", "/project/list"),
    "project.current": Route("GET", "/project/current"),
    "path.get": Route("GET", "/path"),
    "config.get": Route("GET", "/config"),
    "config.providers": Route("GET", "/config/providers"),
    "session.list": Route("GET", "/session/list"),
    "session.get": Route("GET", "/session/{id}"),
    "session.children": Route("GET", "/session/{id}/children"),
    "session.create": Route("POST", "/session/create", SessionCreateBody),
    "session.delete": Route("DELETE", "/session/{id}"),
    "session.update": Route("POST", "/session/{id}", ARBITRARY),
    "session.init": Route("POST", "/session/{id}/init", ARBITRARY),
    "session.abort": Route("POST", "/session/{id}/abort"),
    "session.share": Route("POST", "/session/{id}/share"),
    "session.unshare": Route("POST", "/session/{id}/unshare"),
    "session.summarize": Route("POST", "/session/{id}/summarize", ARBITRARY),
    "session.messages": Route("GET", "/session/{id}/messages"),
    "session.message": Route("GET", "/session/{id}/message/{messageId}"),
    "session.prompt": Route("POST", "/session/{id}/prompt", SessionPromptBody),
    "session.command": Route("POST", "/session/{id}/command", CommandBody),
    "session.shell": Route("POST", "/session/{id}/shell", CommandBody),
}
