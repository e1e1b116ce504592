"""Disconnect classification.

Maps the status code of a closed connection to the error taxonomy that
drives the reconnect policy.
"""

from typing import Optional

from voxrelay.lib.exceptions import (
    ConnectionFailure,
    RateLimitedError,
    SessionExpiredError,
    TerminalAuthError,
    TransientNetworkError,
)
from voxrelay.models.events import DisconnectInfo

LOGGED_OUT = 401
RATE_LIMITED = 405  # Method Not Allowed: the network is blocking this IP
SESSION_EXPIRED = 428  # Precondition Required: session expired due to inactivity

_CLASSES: dict[int, type[ConnectionFailure]] = {
    LOGGED_OUT: TerminalAuthError,
    RATE_LIMITED: RateLimitedError,
    SESSION_EXPIRED: SessionExpiredError,
}


def classify_disconnect(info: Optional[DisconnectInfo]) -> ConnectionFailure:
    """
    Build the error for a closed connection.

    Args:
        info: Disconnect details from the transport (None if not reported)

    Returns:
        TerminalAuthError, SessionExpiredError, RateLimitedError or
        TransientNetworkError
    """
    info = info or DisconnectInfo()
    error_class = _CLASSES.get(info.status_code, TransientNetworkError)

    return error_class(
        f"Connection closed - Status: {info.status_code}, "
        f"Location: {info.location}, Error: {info.message}",
        status_code=info.status_code,
        location=info.location,
    )
