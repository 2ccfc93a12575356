import asyncio
import itertools
from typing import Callable, Optional

import pytest

from replbox.errors import AdapterError
from replbox.models import ExecResponse
from replbox.runtime import ContainerRuntime
from replbox.sandbox_manager import SandboxManager


class FakeRuntime(ContainerRuntime):
    """In-memory runtime that records every call.

    Set ``fail[<method>]`` to make that method raise, and ``exec_handler`` to
    decide what an exec returns. ``orphans`` are containers it reports as
    existing without having created them.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.exec_handler: Optional[Callable[[str, str], ExecResponse]] = None
        self.exec_delay = 0.0
        self.exec_timeouts: list[Optional[float]] = []
        self.orphans: list[str] = []
        self.running: set[str] = set()
        self.in_flight: dict[str, int] = {}
        self.max_in_flight: dict[str, int] = {}
        self._ids = itertools.count(1)

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def create_container(self, image: str) -> str:
        self._record("create_container", image)
        return f"container{next(self._ids):04d}" + "0" * 56

    async def start_container(self, container_id: str) -> None:
        self._record("start_container", container_id)
        self.running.add(container_id)

    async def exec(
        self, container_id: str, command: str, timeout: Optional[float] = None
    ) -> ExecResponse:
        self._record("exec", container_id, command)
        self.exec_timeouts.append(timeout)
        self.in_flight[container_id] = self.in_flight.get(container_id, 0) + 1
        self.max_in_flight[container_id] = max(
            self.max_in_flight.get(container_id, 0), self.in_flight[container_id]
        )
        try:
            if self.exec_delay:
                await asyncio.sleep(self.exec_delay)
            if self.exec_handler:
                return self.exec_handler(container_id, command)
            return ExecResponse(exit_code=0, stdout="", stderr="")
        finally:
            self.in_flight[container_id] -= 1

    async def kill(self, container_id: str) -> None:
        self._record("kill", container_id)
        self.running.discard(container_id)

    async def list_containers(self) -> list[str]:
        if "list_containers" in self.fail:
            raise self.fail["list_containers"]
        return self.orphans + sorted(self.running)


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def manager(runtime):
    return SandboxManager(runtime, session_timeout=60, cleanup_interval=1, exec_timeout=1.0)


@pytest.fixture
def adapter_error():
    return AdapterError("docker daemon unreachable")
