import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import Awaitable, Optional, TypeVar

from replbox.command import synthesize_command
from replbox.errors import (
    AdapterError,
    ExecutionFailed,
    ExecutionTimeout,
    LanguageMismatch,
    ProvisioningFailed,
    ReplboxError,
    SessionNotFound,
    SetupFailed,
)
from replbox.models import ExecResponse, SandboxSession, SessionState, resolve_language
from replbox.runtime import ContainerRuntime

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SandboxManager:
    """Manages sandbox container lifecycle.

    - One container per session, keyed by container id
    - Sessions move Requested -> Provisioned -> Initialized -> Ready -> Killed
    - Executions against one session run one at a time
    - Idle sessions are killed after ``session_timeout`` seconds
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        session_timeout: int = 1800,  # 30 minutes
        cleanup_interval: int = 60,
        exec_timeout: float = 30.0,
        timeout_grace: float = 5.0,
    ):
        self.runtime = runtime
        self.session_timeout = session_timeout
        self.cleanup_interval = cleanup_interval
        self.exec_timeout = exec_timeout
        # Extra wait on top of exec_timeout before giving up on the runtime itself
        self.timeout_grace = timeout_grace

        self.sessions: dict[str, SandboxSession] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the manager and cleanup task."""
        await self._sweep_orphans()
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("SandboxManager started")

    async def _sweep_orphans(self) -> None:
        """Kill containers left behind by an earlier process."""
        try:
            container_ids = await self._bounded(
                self.runtime.list_containers(), "Listing containers"
            )
        except ReplboxError as e:
            logger.error(f"Could not look for orphaned containers: {e}")
            return

        for container_id in container_ids:
            if container_id in self.sessions:
                continue
            logger.info(f"Removing orphaned container {container_id[:12]}")
            try:
                await self._bounded(self.runtime.kill(container_id), "Orphan kill")
            except ReplboxError as e:
                logger.error(f"Failed to remove orphaned container {container_id[:12]}: {e}")

    async def stop(self) -> None:
        """Stop the manager and kill all sessions."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        for session_id in list(self.sessions.keys()):
            await self.kill_session(session_id)

        logger.info("SandboxManager stopped")

    async def _bounded(self, call: Awaitable[T], what: str, timeout: Optional[float] = None) -> T:
        timeout = timeout if timeout is not None else self.exec_timeout
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            raise ExecutionTimeout(f"{what} timed out after {timeout}s") from None

    async def _exec(self, container_id: str, command: str, what: str) -> ExecResponse:
        """Run ``command`` with the in-container timeout and a backstop around it."""
        return await self._bounded(
            self.runtime.exec(container_id, command, timeout=self.exec_timeout),
            what,
            timeout=self.exec_timeout + self.timeout_grace,
        )

    async def create_session(self, language: str) -> SandboxSession:
        """Provision, start and prepare a container for ``language``.

        Each completed step registers its undo on a cleanup stack, so a failure
        in a later step kills the container instead of leaking it.

        Raises:
            UnsupportedLanguage: before any runtime call is made.
            ProvisioningFailed: container could not be created or started.
            SetupFailed: the initial target file could not be created.
        """
        spec = resolve_language(language)
        session = SandboxSession(language=spec)

        async with AsyncExitStack() as cleanup:
            try:
                container_id = await self.runtime.create_container(spec.image)
            except AdapterError as e:
                raise ProvisioningFailed(f"Couldn't create container: {e}") from e
            session.container_id = container_id
            session.transition(SessionState.PROVISIONED)
            cleanup.push_async_callback(self._rollback, session)

            try:
                await self.runtime.start_container(container_id)
            except AdapterError as e:
                raise ProvisioningFailed(f"Couldn't start container: {e}") from e
            session.transition(SessionState.INITIALIZED)

            try:
                result = await self._exec(
                    container_id, f"touch {spec.default_file}", "Container setup"
                )
            except (AdapterError, ExecutionTimeout) as e:
                raise SetupFailed(f"Couldn't setup container: {e}") from e
            if result.exit_code != 0:
                raise SetupFailed(
                    f"Couldn't setup container: exit code {result.exit_code}: "
                    f"{result.stderr.strip()}"
                )
            session.transition(SessionState.READY)

            cleanup.pop_all()

        async with self._lock:
            self.sessions[container_id] = session

        logger.info(
            f"Created {spec.name} session {container_id[:12]} from image {spec.image}"
        )
        return session

    async def _rollback(self, session: SandboxSession) -> None:
        """Kill a container whose session never became ready."""
        logger.warning(
            f"Rolling back session {session.container_id[:12]} "
            f"(reached {session.state.value})"
        )
        session.transition(SessionState.KILLED)
        try:
            await self._bounded(self.runtime.kill(session.container_id), "Rollback kill")
        except ReplboxError as e:
            logger.error(f"Failed to roll back container {session.container_id[:12]}: {e}")

    async def get_session(self, session_id: str) -> Optional[SandboxSession]:
        """Get an existing session by ID."""
        session = self.sessions.get(session_id)
        if session:
            session.touch()
        return session

    async def execute(self, session_id: str, language: str, code: str) -> ExecResponse:
        """Run ``code`` inside the session's container and return its output.

        Raises:
            SessionNotFound: no ready session is registered under ``session_id``.
            LanguageMismatch: ``language`` is not the session's language.
            ExecutionTimeout: the runtime itself stopped answering. Code that
                runs too long comes back as a response with ``timed_out`` set.
            ExecutionFailed: the runtime reported an error.
        """
        if not isinstance(session_id, str):
            raise SessionNotFound(f"Session {session_id!r} not found")
        session = await self.get_session(session_id)
        if session is None or not session.is_ready:
            raise SessionNotFound(f"Session {session_id} not found")
        if language != session.language.name:
            raise LanguageMismatch(
                f"Session {session_id[:12]} runs {session.language.name}, not {language}"
            )
        if not isinstance(code, str):
            raise ExecutionFailed("Code must be a string")

        command = synthesize_command(code, language)

        async with session.exec_lock:
            # Killed while queued behind another execution
            if not session.is_ready:
                raise SessionNotFound(f"Session {session_id} not found")
            try:
                result = await self._exec(session_id, command, "Execution")
            except AdapterError as e:
                raise ExecutionFailed(str(e)) from e
            finally:
                session.touch()

        if result.timed_out:
            logger.info(
                f"Execution in session {session_id[:12]} hit the {self.exec_timeout}s limit"
            )
        return result

    async def kill_session(self, session_id: str) -> bool:
        """Kill a session and its container.

        Best effort: the session is marked killed and forgotten even when the
        runtime fails to remove the container. Returns whether the runtime
        reported success. Never raises.
        """
        if not isinstance(session_id, str):
            logger.warning(f"Kill requested for invalid session id {session_id!r}")
            return False
        async with self._lock:
            session = self.sessions.pop(session_id, None)
        if session is None:
            logger.warning(f"Kill requested for unknown session {session_id!r}")
            return False

        session.transition(SessionState.KILLED)
        try:
            await self._bounded(self.runtime.kill(session_id), "Kill")
        except ReplboxError as e:
            logger.error(f"Failed to kill session {session_id[:12]}: {e}")
            return False

        logger.info(f"Killed session {session_id[:12]}")
        return True

    async def _cleanup_loop(self):
        """Periodically kill expired sessions."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self._cleanup_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Cleanup error: {e}")

    async def _cleanup_expired(self, now: Optional[float] = None):
        """Kill sessions that have been inactive too long."""
        if now is None:
            now = time.time()
        expired = [
            sid
            for sid, session in self.sessions.items()
            if now - session.last_activity > self.session_timeout
            and not session.exec_lock.locked()
        ]

        for session_id in expired:
            logger.info(f"Cleaning up expired session {session_id[:12]}")
            await self.kill_session(session_id)

    def list_sessions(self) -> list[dict]:
        """List all live sessions."""
        return [s.to_dict() for s in self.sessions.values()]
