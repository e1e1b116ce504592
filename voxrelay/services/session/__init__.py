"""Messaging session: connection state machine, pairing and reconnects."""

from voxrelay.services.session.disconnects import classify_disconnect
from voxrelay.services.session.manager import InvalidStateError, SessionManager
from voxrelay.services.session.pairing import PairingCodeCoordinator
from voxrelay.services.session.timers import CancellableTimer

__all__ = [
    "SessionManager",
    "InvalidStateError",
    "PairingCodeCoordinator",
    "CancellableTimer",
    "classify_disconnect",
]
