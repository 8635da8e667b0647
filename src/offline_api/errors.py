"""Error taxonomy for the request pipeline."""


class OfflineApiError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(OfflineApiError):
    """Raised when settings cannot be loaded or validated."""


class TransientNetworkError(OfflineApiError):
    """Connectivity was lost while a request was in flight."""


class TransientServerError(OfflineApiError):
    """The backend answered with a retryable server-side failure."""


class PermanentCommandError(OfflineApiError):
    """The backend rejected a command for good; it will not be retried."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"{command} was rejected: {reason}")
        self.command = command
        self.reason = reason


class FatalAuthError(OfflineApiError):
    """Reauthentication failed and new credentials are required."""


class ReauthenticationDeferred(OfflineApiError):
    """Reauthentication could not run now (offline or transient failure)."""
