"""Error kinds raised along the session pipeline.

The message of each error is what callers see as the failure reason.
"""


class ReplboxError(Exception):
    """Base class for every error replbox raises on purpose."""


class MalformedRequest(ReplboxError):
    """Payload matches none of the known operation shapes."""


class UnsupportedLanguage(ReplboxError):
    """Language is not in the registry."""


class AdapterError(ReplboxError):
    """The container runtime reported a failure."""


class ProvisioningFailed(ReplboxError):
    """Container could not be created or started."""


class SetupFailed(ReplboxError):
    """Container started but the initial file could not be prepared."""


class ExecutionFailed(ReplboxError):
    """Code could not be run inside the session's container."""


class SessionNotFound(ExecutionFailed):
    """No ready session is registered under the given id."""


class LanguageMismatch(ExecutionFailed):
    """Execution language differs from the language the session was created with."""


class ExecutionTimeout(ExecutionFailed):
    """Runtime call did not finish within the configured timeout."""


class InvalidTransition(ReplboxError):
    """Illegal session state change."""
