"""
Request body models for engine API operations.

Each operation that takes a body declares the fields it accepts; unknown
fields are rejected before anything is sent. Part payloads (the items of
``parts``) stay opaque: their schema belongs to the engine.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    """Base for request bodies: strict about unknown fields."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        """Wire form: camelCase aliases, unset optionals omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AppLogBody(_Body):
    """Body of app.log: write an entry to the engine's log."""

    service: str
    level: Literal["debug", "info", "warn", "error"]
    message: str


class SessionCreateBody(_Body):
    """Body of session.create."""

    parts: List[Dict[str, Any]] = Field(default_factory=list)


class SessionPromptBody(_Body):
    """Body of session.prompt."""

    parts: List[Dict[str, Any]]
    no_reply: Optional[bool] = Field(default=None, alias="noReply")
    output_format: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None, alias="outputFormat"
    )


class CommandBody(_Body):
    """Body of session.command and session.shell."""

    command: str


def text_part(text: str) -> Dict[str, Any]:
    """Build a text part for session.create / session.prompt."""
    return {"type": "text", "text": text}
