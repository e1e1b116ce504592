"""Messaging transport Protocol.

The wire protocol (handshake, encryption, multi-device sync) is provided by
an external implementation. This module fixes the contract the session
manager relies on and the options it passes at connect time.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Union, runtime_checkable

from voxrelay.models.events import ConnectionEvent, CredentialsUpdate, MessageEvent
from voxrelay.models.session import Credentials

TransportEvent = Union[ConnectionEvent, CredentialsUpdate, MessageEvent]


@dataclass(frozen=True)
class TransportOptions:
    """
    Connection options handed to the transport.

    Attributes:
        print_qr: Whether the transport should print QR codes itself
        browser: Browser identity announced to the network
        connect_timeout: Connect timeout in seconds
        keep_alive_interval: Keep-alive ping interval in seconds
        server_env: Use the conservative server profile (no full history
            sync, no online presence on connect, no initial queries)
    """

    print_qr: bool = False
    browser: tuple[str, str, str] = ("Chrome", "Windows", "10")
    connect_timeout: float = 60.0
    keep_alive_interval: float = 30.0
    server_env: bool = False


@runtime_checkable
class MessagingTransport(Protocol):
    """
    Contract for messaging transport implementations.

    Example:
        >>> transport = load_transport("mybridge.transport:create", options)
        >>> async for event in transport.connect(credentials, options):
        ...     print(event)
    """

    def connect(
        self, credentials: Credentials, options: TransportOptions
    ) -> AsyncIterator[TransportEvent]:
        """
        Open one connection and stream its events.

        Args:
            credentials: Current credential snapshot; the transport reads
                identity and keys from it (see Credentials.get_keys)
            options: Connection options

        Returns:
            Async iterator of events. The stream ends after a CLOSE event
            or when close() is called.

        Contract:
            - MUST emit CredentialsUpdate whenever credentials change, and
              MUST NOT rely on them being persisted until the next event is
              requested from the stream
            - MUST report disconnects as ConnectionEvent(status=CLOSE)
        """
        ...

    async def send_text(self, recipient_id: str, text: str) -> None:
        """Send a text message. Raises on failure."""
        ...

    async def request_pairing_code(self, phone_number: str) -> str | None:
        """Request a numeric pairing code for a phone number (digits only)."""
        ...

    async def download_media(self, audio_ref: dict) -> bytes:
        """Download and decrypt a media payload. Raises on failure."""
        ...

    async def logout(self) -> None:
        """Log the linked device out of the account."""
        ...

    async def close(self) -> None:
        """Close the current connection, ending the event stream."""
        ...


__all__ = ["MessagingTransport", "TransportEvent", "TransportOptions"]
