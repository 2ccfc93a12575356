# replbox - throwaway sandboxes for running user code
"""
replbox - Per-session sandboxed code execution.

Provision a container per client session, run submitted code in it and hand
back the captured output.
"""

from replbox.command import CommandSpec, build_command_spec, synthesize_command
from replbox.dispatcher import Dispatcher, Reply
from replbox.models import ExecResponse, LanguageSpec, RuntimeType, SandboxSession, SessionState
from replbox.operations import CreateExecution, CreateSession, KillSession, classify
from replbox.runtime import ContainerRuntime, DockerRuntime
from replbox.sandbox_manager import SandboxManager

__all__ = [
    "SandboxManager",
    "SandboxSession",
    "SessionState",
    "ExecResponse",
    "LanguageSpec",
    "RuntimeType",
    "ContainerRuntime",
    "DockerRuntime",
    "CommandSpec",
    "build_command_spec",
    "synthesize_command",
    "CreateSession",
    "KillSession",
    "CreateExecution",
    "classify",
    "Dispatcher",
    "Reply",
]

__version__ = "0.1.0"
