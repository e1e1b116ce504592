"""Exception hierarchy for the voice-note relay.

All custom exceptions inherit from VoxRelayError to enable
selective catching at different levels.

Hierarchy:
    VoxRelayError (base)
    ├── ConfigError - Missing or invalid configuration (fatal at startup)
    ├── ConnectionFailure - Session disconnects, classified by status code
    │   ├── TerminalAuthError - Explicit logout, never retried
    │   ├── SessionExpiredError - Retried once after backup and cooldown
    │   ├── RateLimitedError - Retried after an extended cooldown
    │   └── TransientNetworkError - Retried with exponential backoff
    ├── ProviderError - Transcription/summarization provider failures
    ├── StagingError - Voice payload download/write failures
    ├── DeliveryError - Outbound reply failures
    └── PersistenceError - Credential store read/write failures
"""


class VoxRelayError(Exception):
    """
    Base exception for all relay errors.

    Catching this will catch all custom exceptions from this module.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigError(VoxRelayError):
    """
    Configuration error.

    Raised when required configuration is missing or invalid.

    CLI Exit Code: 2

    Attributes:
        missing: Names of the environment variables that must be set
    """

    def __init__(self, message: str, missing: list[str] | None = None):
        self.missing = list(missing or [])
        super().__init__(message)


class ConnectionFailure(VoxRelayError):
    """
    A closed or failed connection to the messaging network.

    Handled entirely inside the session manager; never reaches the pipeline.

    Attributes:
        status_code: Disconnect status reported by the transport, if any
        location: Server location reported by the transport
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        location: str = "unknown",
        original_error: Exception | None = None,
    ):
        self.status_code = status_code
        self.location = location
        self.original_error = original_error
        super().__init__(message)


class TerminalAuthError(ConnectionFailure):
    """The session was logged out remotely. No reconnect is attempted."""

    pass


class SessionExpiredError(ConnectionFailure):
    """The session expired (precondition required). Reconnect once after cooldown."""

    pass


class RateLimitedError(ConnectionFailure):
    """The network refused the connection (method not allowed), usually an IP block."""

    pass


class TransientNetworkError(ConnectionFailure):
    """Any other disconnect. Retried with exponential backoff up to a cap."""

    pass


class ProviderError(VoxRelayError):
    """
    Transcription or summarization provider error.

    Raised when a provider fails to return a usable response.
    Examples: network error, rate limit, authentication failure, malformed body.

    Attributes:
        provider: Name of the provider that failed
        original_error: Original exception if wrapping
    """

    def __init__(
        self, message: str, provider: str = "unknown", original_error: Exception | None = None
    ):
        self.provider = provider
        self.original_error = original_error
        full_message = f"[{provider}] {message}"
        super().__init__(full_message)


class StagingError(VoxRelayError):
    """
    Voice payload could not be downloaded or written to the staging area.

    Abandons the single message only.
    """

    def __init__(self, message: str, message_id: str | None = None):
        self.message_id = message_id
        super().__init__(message)


class DeliveryError(VoxRelayError):
    """An outbound reply could not be sent."""

    def __init__(self, message: str, recipient_id: str | None = None):
        self.recipient_id = recipient_id
        super().__init__(message)


class PersistenceError(VoxRelayError):
    """
    Storage read/write error.

    Attributes:
        path: Path that caused the error
        operation: Operation that failed (read, write, backup, delete)
    """

    def __init__(self, message: str, path: str | None = None, operation: str | None = None):
        self.path = path
        self.operation = operation
        super().__init__(message)
