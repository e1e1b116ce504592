"""Session models for the messaging connection.

This module defines the connection state machine, the reconnect policy
and the credential snapshot owned by the session manager.
"""

import base64
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from voxrelay.models.events import CredentialsUpdate


class ConnectionState(str, Enum):
    """
    Connection lifecycle states.

    State transitions:
        IDLE → CONNECTING → AUTHENTICATING → OPEN → CLOSING → IDLE
        CONNECTING | AUTHENTICATING | OPEN → BACKOFF (on failure)
        BACKOFF → CONNECTING (when the backoff timer fires)
        Any active state → IDLE (on fatal failure or stop)
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    BACKOFF = "BACKOFF"

    @classmethod
    def allowed_transitions(cls) -> dict["ConnectionState", list["ConnectionState"]]:
        """Return allowed state transitions."""
        return {
            cls.IDLE: [cls.CONNECTING],
            cls.CONNECTING: [cls.AUTHENTICATING, cls.OPEN, cls.BACKOFF, cls.CLOSING, cls.IDLE],
            cls.AUTHENTICATING: [cls.OPEN, cls.BACKOFF, cls.CLOSING, cls.IDLE],
            cls.OPEN: [cls.BACKOFF, cls.CLOSING, cls.IDLE],
            cls.CLOSING: [cls.IDLE],
            cls.BACKOFF: [cls.CONNECTING, cls.IDLE],
        }

    def can_transition_to(self, new_state: "ConnectionState") -> bool:
        """Check if transition to new_state is allowed."""
        return new_state in self.allowed_transitions().get(self, [])


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable reconnect policy.

    Attributes:
        base_delay: Delay unit in seconds
        max_delay: Upper bound for any single delay
        max_attempts: Connection attempts allowed before giving up
        backoff_factor: Growth factor per consecutive failure
    """

    base_delay: float = 5.0
    max_delay: float = 60.0
    max_attempts: int = 5
    backoff_factor: float = 1.5

    def __post_init__(self):
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in seconds after `attempt` consecutive failures."""
        return min(self.base_delay * self.backoff_factor ** attempt, self.max_delay)

    def allows(self, failures: int) -> bool:
        """True if another connection attempt fits in the budget."""
        return failures < self.max_attempts


@dataclass
class Credentials:
    """
    Session credentials and cached key material.

    Attributes:
        identity: Self-identity record ("me"), None until authenticated
        registered: Registration flag, None when never recorded
        key_material: Opaque key bytes managed by the transport
        keys: Cached sync keys, "category.id" -> opaque JSON value
    """

    identity: Optional[dict] = None
    registered: Optional[bool] = None
    key_material: bytes = b""
    keys: dict[str, Any] = field(default_factory=dict)

    @property
    def is_usable(self) -> bool:
        """A snapshot is usable only with a complete identity record."""
        if not isinstance(self.identity, dict) or not self.identity.get("id"):
            return False
        return self.registered is not None

    @staticmethod
    def key_name(category: str, key_id: str) -> str:
        """Storage key for one cached value."""
        return f"{category}.{key_id}"

    def get_keys(self, category: str, ids: Iterable[str]) -> dict[str, Any]:
        """Return {id: value} for the ids present in a category."""
        found = {}
        for key_id in ids:
            value = self.keys.get(self.key_name(category, key_id))
            if value is not None:
                found[key_id] = value
        return found

    def apply(self, update: "CredentialsUpdate") -> None:
        """
        Merge a credential update from the transport.

        Fields left as None are unchanged. A key whose value is None is removed.
        """
        if update.identity is not None:
            self.identity = copy.deepcopy(update.identity)
        if update.registered is not None:
            self.registered = update.registered
        if update.key_material is not None:
            self.key_material = update.key_material

        for category, entries in update.keys.items():
            for key_id, value in entries.items():
                name = self.key_name(category, key_id)
                if value is None:
                    self.keys.pop(name, None)
                else:
                    self.keys[name] = copy.deepcopy(value)

    def to_document(self) -> dict:
        """Convert to the persisted document layout."""
        creds: dict[str, Any] = {}
        if self.identity is not None:
            creds["me"] = self.identity
        if self.registered is not None:
            creds["registered"] = self.registered
        if self.key_material:
            creds["keyMaterial"] = base64.b64encode(self.key_material).decode("ascii")

        return {"creds": creds, "keys": dict(self.keys)}

    @classmethod
    def from_document(cls, data: dict) -> "Credentials":
        """
        Create from the persisted document layout.

        Raises:
            ValueError: If a section has the wrong shape or keyMaterial is
                not valid base64
        """
        if not isinstance(data, dict):
            raise ValueError("Credentials document must be an object")

        creds = data.get("creds") or {}
        keys = data.get("keys") or {}
        if not isinstance(creds, dict) or not isinstance(keys, dict):
            raise ValueError("creds and keys must be objects")

        identity = creds.get("me")
        if identity is not None and not isinstance(identity, dict):
            raise ValueError("creds.me must be an object")

        registered = creds.get("registered")
        if registered is not None and not isinstance(registered, bool):
            raise ValueError("creds.registered must be a boolean")

        key_material = creds.get("keyMaterial")

        return cls(
            identity=identity,
            registered=registered,
            key_material=base64.b64decode(key_material, validate=True) if key_material else b"",
            keys=dict(keys),
        )


@dataclass
class Session:
    """
    One logical connection to the messaging network.

    Created at startup and mutated by the session manager only.

    Attributes:
        state: Current connection state
        credentials: In-memory credential snapshot
        retry_count: Consecutive failed connection attempts since the last open
        last_error: Description of the most recent disconnect
        expired_retry_used: Whether the one session-expired reconnect was spent
        fatal_error: Error that stopped the session for good
    """

    state: ConnectionState = ConnectionState.IDLE
    credentials: Credentials = field(default_factory=Credentials)
    retry_count: int = 0
    last_error: Optional[str] = None
    expired_retry_used: bool = False
    fatal_error: Optional[Exception] = None

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN
