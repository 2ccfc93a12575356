"""Decode request payloads into operations.

A payload is classified by the set of keys it carries, never by its values:

- ``{"language"}``: create a session
- ``{"containerId"}``: kill a session (only on DELETE)
- ``{"containerId", "language", "code", ...}``: run code in a session

The shapes do not overlap, so at most one of them ever matches. Values are
passed on untouched; an unknown language or container id is rejected by the
session manager, not here.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from replbox.errors import MalformedRequest


@dataclass(frozen=True)
class CreateSession:
    language: Any

    @classmethod
    def decode(cls, payload: Mapping[str, Any]) -> Optional["CreateSession"]:
        if set(payload) != {"language"}:
            return None
        return cls(language=payload["language"])


@dataclass(frozen=True)
class KillSession:
    container_id: Any

    @classmethod
    def decode(cls, payload: Mapping[str, Any]) -> Optional["KillSession"]:
        if set(payload) != {"containerId"}:
            return None
        return cls(container_id=payload["containerId"])


@dataclass(frozen=True)
class CreateExecution:
    container_id: Any
    language: Any
    code: Any

    @classmethod
    def decode(cls, payload: Mapping[str, Any]) -> Optional["CreateExecution"]:
        if not {"containerId", "language", "code"} <= set(payload):
            return None
        return cls(
            container_id=payload["containerId"],
            language=payload["language"],
            code=payload["code"],
        )


Operation = Union[CreateSession, KillSession, CreateExecution]


def classify(payload: Any, method: str = "POST") -> Operation:
    """Return the operation ``payload`` describes.

    DELETE with a kill-shaped payload is a kill. Otherwise a create-session
    shape is tried first, then a create-execution shape.

    Raises:
        MalformedRequest: if no shape matches.
    """
    if not isinstance(payload, Mapping):
        raise MalformedRequest("Request body must be a JSON object")

    if method.upper() == "DELETE":
        kill = KillSession.decode(payload)
        if kill is not None:
            return kill

    for variant in (CreateSession, CreateExecution):
        operation = variant.decode(payload)
        if operation is not None:
            return operation

    raise MalformedRequest(
        f"Unrecognized request with keys {sorted(map(str, payload))}"
    )
