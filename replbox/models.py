"""Internal models for the sandbox manager."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from replbox.errors import InvalidTransition, UnsupportedLanguage

DEFAULT_FILENAME = "file"


@dataclass
class ExecResponse:
    """Response from command execution."""
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timed_out": self.timed_out,
        }


class RuntimeType(str, Enum):
    """Container runtime type."""
    RUNC = "runc"  # Standard Docker runtime
    RUNSC = "runsc"  # gVisor runtime


@dataclass(frozen=True)
class LanguageSpec:
    """How to run one language: which image, which file suffix, which interpreter."""
    name: str
    image: str
    file_extension: str
    interpreter: str

    @property
    def default_file(self) -> str:
        return f"{DEFAULT_FILENAME}.{self.file_extension}"


LANGUAGES: dict[str, LanguageSpec] = {
    "python": LanguageSpec("python", "python:3", "py", "python"),
    "javascript": LanguageSpec("javascript", "node:18-alpine", "js", "node"),
}


def resolve_language(language: Any) -> LanguageSpec:
    """Look up a language in the registry. Anything but a known name is unsupported."""
    spec = LANGUAGES.get(language) if isinstance(language, str) else None
    if spec is None:
        supported = ", ".join(sorted(LANGUAGES))
        raise UnsupportedLanguage(
            f"Unsupported language {language!r} (supported: {supported})"
        )
    return spec


class SessionState(str, Enum):
    """Lifecycle states of a sandbox session."""
    REQUESTED = "requested"
    PROVISIONED = "provisioned"  # container created
    INITIALIZED = "initialized"  # container started
    READY = "ready"  # target file in place, accepting executions
    KILLED = "killed"


_TRANSITIONS = {
    SessionState.REQUESTED: {SessionState.PROVISIONED},
    SessionState.PROVISIONED: {SessionState.INITIALIZED},
    SessionState.INITIALIZED: {SessionState.READY},
    SessionState.READY: set(),
}


@dataclass
class SandboxSession:
    """Represents a sandbox session and the container backing it."""

    language: LanguageSpec
    container_id: Optional[str] = None
    state: SessionState = SessionState.REQUESTED
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    # One in-flight execution per session
    exec_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def transition(self, new_state: SessionState) -> None:
        """Move to ``new_state``. Killed is reachable from any live state."""
        if self.state == SessionState.KILLED:
            raise InvalidTransition(
                f"Session {self.container_id} is killed, cannot become {new_state.value}"
            )
        if new_state != SessionState.KILLED and new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Session {self.container_id} cannot go from "
                f"{self.state.value} to {new_state.value}"
            )
        self.state = new_state

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    def touch(self) -> None:
        self.last_activity = time.time()

    def to_dict(self) -> dict:
        return {
            "container_id": self.container_id,
            "language": self.language.name,
            "state": self.state.value,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }
