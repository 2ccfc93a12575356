import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Optional

from replbox.errors import (
    ExecutionFailed,
    MalformedRequest,
    ProvisioningFailed,
    SetupFailed,
    UnsupportedLanguage,
)
from replbox.operations import CreateExecution, CreateSession, KillSession, classify
from replbox.sandbox_manager import SandboxManager

logger = logging.getLogger(__name__)


@dataclass
class Reply:
    """Transport-neutral outcome of one request."""
    status: HTTPStatus
    body: Optional[dict] = None

    @classmethod
    def error(cls, status: HTTPStatus, reason: str) -> "Reply":
        return cls(status=status, body={"error": reason})


class Dispatcher:
    """Route decoded payloads to the session manager."""

    def __init__(self, manager: SandboxManager):
        self.manager = manager

    async def dispatch(self, payload: Any, method: str = "POST") -> Reply:
        try:
            operation = classify(payload, method)
        except MalformedRequest as e:
            return Reply.error(HTTPStatus.BAD_REQUEST, str(e))

        if isinstance(operation, KillSession):
            return await self.kill_session(operation)
        if isinstance(operation, CreateSession):
            return await self.create_session(operation)
        return await self.create_execution(operation)

    async def create_session(self, operation: CreateSession) -> Reply:
        try:
            session = await self.manager.create_session(operation.language)
        except (UnsupportedLanguage, ProvisioningFailed, SetupFailed) as e:
            logger.error(f"Session creation failed: {e}")
            return Reply.error(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))
        return Reply(HTTPStatus.CREATED, {"containerId": session.container_id})

    async def create_execution(self, operation: CreateExecution) -> Reply:
        try:
            result = await self.manager.execute(
                operation.container_id, operation.language, operation.code
            )
        except ExecutionFailed as e:
            logger.error(f"Execution failed: {e}")
            return Reply.error(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))
        return Reply(HTTPStatus.CREATED, result.to_dict())

    async def kill_session(self, operation: KillSession) -> Reply:
        # Always reported as success; failures are logged by the manager
        await self.manager.kill_session(operation.container_id)
        return Reply(HTTPStatus.OK, {"containerId": operation.container_id})
