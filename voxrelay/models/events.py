"""Transport event normalization layer.

These dataclasses isolate the messaging protocol details from the rest of
the application. A transport yields ConnectionEvent, CredentialsUpdate and
MessageEvent instances from its connect() stream.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

BROADCAST_SUFFIX = "@broadcast"
VOICE_MESSAGE_TYPE = "audioMessage"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionStatus(str, Enum):
    """Connection status reported by the transport."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class DisconnectInfo:
    """
    Why a connection closed.

    Attributes:
        status_code: Protocol status code (e.g. 401, 405, 428), None if unknown
        message: Human-readable error message
        location: Server location that closed the connection
    """

    status_code: Optional[int] = None
    message: str = "Unknown error"
    location: str = "unknown"


@dataclass(frozen=True)
class ConnectionEvent:
    """
    Connection state change.

    Attributes:
        status: New connection status, None for QR-only updates
        error: Disconnect details when status is CLOSE
        qr_payload: Scannable code payload while authenticating
    """

    status: Optional[ConnectionStatus] = None
    error: Optional[DisconnectInfo] = None
    qr_payload: Optional[str] = None

    @classmethod
    def connecting(cls) -> "ConnectionEvent":
        return cls(status=ConnectionStatus.CONNECTING)

    @classmethod
    def opened(cls) -> "ConnectionEvent":
        return cls(status=ConnectionStatus.OPEN)

    @classmethod
    def closed(
        cls, status_code: Optional[int] = None, message: str = "Unknown error", location: str = "unknown"
    ) -> "ConnectionEvent":
        return cls(
            status=ConnectionStatus.CLOSE,
            error=DisconnectInfo(status_code=status_code, message=message, location=location),
        )

    @classmethod
    def qr(cls, payload: str) -> "ConnectionEvent":
        return cls(qr_payload=payload)


@dataclass(frozen=True)
class CredentialsUpdate:
    """
    Credential mutation signalled by the transport.

    None fields are unchanged. `keys` maps category -> {id: value}; a None
    value deletes that key.
    """

    identity: Optional[dict] = None
    registered: Optional[bool] = None
    key_material: Optional[bytes] = None
    keys: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageEvent:
    """
    Inbound message.

    Attributes:
        message_id: Unique message identifier
        remote_id: Chat the message belongs to (sender or broadcast channel)
        payload: Message content keyed by message type, e.g. {"audioMessage": {...}}
        received_at: When the event was received
        from_me: Whether the message was sent by this account
    """

    message_id: str
    remote_id: str
    payload: Optional[dict] = None
    received_at: datetime = field(default_factory=_now)
    from_me: bool = False

    @property
    def message_type(self) -> Optional[str]:
        """First payload key, which names the message type."""
        if not self.payload:
            return None
        return next(iter(self.payload))

    @property
    def is_broadcast(self) -> bool:
        """Check if this event came from a broadcast/status channel."""
        return self.remote_id.endswith(BROADCAST_SUFFIX)

    @property
    def is_voice(self) -> bool:
        """Check if this event carries a voice recording."""
        return self.message_type == VOICE_MESSAGE_TYPE


@dataclass(frozen=True)
class InboundVoiceNote:
    """
    A voice note accepted for processing.

    Ephemeral: lives only while one pipeline run handles it.

    Attributes:
        message_id: Unique message identifier, keys the staged artifact
        sender_id: Chat to reply to
        audio_ref: Transport-specific media descriptor for download
        received_at: When the event was received
    """

    message_id: str
    sender_id: str
    audio_ref: dict
    received_at: datetime

    @classmethod
    def from_event(cls, event: MessageEvent) -> "InboundVoiceNote":
        """Create from a voice MessageEvent."""
        return cls(
            message_id=event.message_id,
            sender_id=event.remote_id,
            audio_ref=event.payload[VOICE_MESSAGE_TYPE],
            received_at=event.received_at,
        )
