import os
from dataclasses import dataclass

from replbox.models import RuntimeType


@dataclass
class Settings:
    """Server settings, read from the environment."""
    host: str = "0.0.0.0"
    port: int = 5000
    allowed_origin: str = "http://localhost:3000"
    runtime: RuntimeType = RuntimeType.RUNC
    session_timeout: int = 1800
    cleanup_interval: int = 60
    exec_timeout: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.getenv("REPLBOX_HOST", "0.0.0.0"),
            port=int(os.getenv("REPLBOX_PORT", "5000")),
            allowed_origin=os.getenv("ALLOWED_ORIGIN", "http://localhost:3000"),
            runtime=RuntimeType(os.getenv("SANDBOX_RUNTIME", "runc")),
            session_timeout=int(os.getenv("SESSION_TIMEOUT", "1800")),
            cleanup_interval=int(os.getenv("CLEANUP_INTERVAL", "60")),
            exec_timeout=float(os.getenv("EXEC_TIMEOUT", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
