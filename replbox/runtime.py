"""Container runtime adapters.

The session manager only talks to a :class:`ContainerRuntime`. Every failure
inside an adapter is raised as :class:`AdapterError` so callers never see
backend-specific exceptions.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from docker.models.containers import Container

from replbox.errors import AdapterError
from replbox.models import ExecResponse, RuntimeType

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exit statuses of `timeout` when it had to stop the command (TERM, KILL)
TIMEOUT_EXIT_CODES = {124, 137}


class ContainerRuntime(ABC):
    """Create, start, exec into and kill sandbox containers."""

    @abstractmethod
    async def create_container(self, image: str) -> str:
        """Create a container from ``image`` and return its id."""

    @abstractmethod
    async def start_container(self, container_id: str) -> None:
        """Start a created container."""

    @abstractmethod
    async def exec(
        self, container_id: str, command: str, timeout: Optional[float] = None
    ) -> ExecResponse:
        """Run a shell command inside a running container.

        With ``timeout``, the command is killed inside the container once it
        runs longer than that many seconds and the response has ``timed_out``.
        """

    @abstractmethod
    async def kill(self, container_id: str) -> None:
        """Stop and remove a container."""

    async def list_containers(self) -> list[str]:
        """Ids of every container this runtime created, running or not."""
        return []


class DockerRuntime(ContainerRuntime):
    """Runtime backed by the local Docker daemon.

    The Docker SDK is synchronous, so every call runs in the default executor.
    """

    def __init__(
        self,
        runtime: RuntimeType = RuntimeType.RUNC,
        workdir: str = "/workspace",
        docker_client: Optional[docker.DockerClient] = None,
    ):
        self.runtime = runtime
        self.workdir = workdir
        self.docker_client = docker_client or docker.from_env()

    async def _run(self, func: Callable[[], T]) -> T:
        return await asyncio.get_event_loop().run_in_executor(None, func)

    def _get(self, container_id: str) -> Container:
        return self.docker_client.containers.get(container_id)

    def _create(self, image: str) -> Container:
        kwargs = dict(
            # Keep the container alive between execs
            command=["sleep", "infinity"],
            runtime=self.runtime.value,
            working_dir=self.workdir,
            security_opt=["no-new-privileges"],
            labels={"replbox": "true"},
        )
        try:
            return self.docker_client.containers.create(image, **kwargs)
        except ImageNotFound:
            logger.info(f"Pulling image {image}")
            self.docker_client.images.pull(image)
            return self.docker_client.containers.create(image, **kwargs)

    async def create_container(self, image: str) -> str:
        try:
            container = await self._run(lambda: self._create(image))
        except DockerException as e:
            raise AdapterError(f"Failed to create container from {image}: {e}") from e
        return container.id

    async def start_container(self, container_id: str) -> None:
        try:
            await self._run(lambda: self._get(container_id).start())
        except DockerException as e:
            raise AdapterError(f"Failed to start container {container_id[:12]}: {e}") from e

    async def exec(
        self, container_id: str, command: str, timeout: Optional[float] = None
    ) -> ExecResponse:
        argv = ["sh", "-c", command]
        if timeout is not None:
            # coreutils and busybox both ship `timeout`; whole seconds only
            argv = ["timeout", "-s", "KILL", str(max(1, math.ceil(timeout)))] + argv

        def run_exec():
            container = self._get(container_id)
            return container.exec_run(
                argv,
                workdir=self.workdir,
                demux=True,
            )

        try:
            result = await self._run(run_exec)
        except DockerException as e:
            raise AdapterError(f"Failed to exec in container {container_id[:12]}: {e}") from e

        stdout, stderr = result.output or (None, None)
        exit_code = result.exit_code if result.exit_code is not None else -1
        return ExecResponse(
            exit_code=exit_code,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
            timed_out=timeout is not None and exit_code in TIMEOUT_EXIT_CODES,
        )

    async def kill(self, container_id: str) -> None:
        try:
            await self._run(lambda: self._get(container_id).remove(force=True))
        except NotFound:
            logger.warning(f"Container {container_id[:12]} already gone")
        except DockerException as e:
            raise AdapterError(f"Failed to kill container {container_id[:12]}: {e}") from e

    async def list_containers(self) -> list[str]:
        try:
            containers = await self._run(
                lambda: self.docker_client.containers.list(
                    all=True, filters={"label": "replbox=true"}
                )
            )
        except DockerException as e:
            raise AdapterError(f"Failed to list containers: {e}") from e
        return [c.id for c in containers]
