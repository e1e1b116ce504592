"""Session manager for the messaging connection.

This module owns the connection state machine defined in
models/session.py. It authenticates new sessions (QR or pairing code),
persists every credential change before consuming the next transport
event, classifies disconnects and schedules reconnects on a single
cancellable timer.

Transport-level errors are handled here and never reach the pipeline.
"""

import asyncio
import copy
import logging
from typing import Callable, Optional

from voxrelay.lib.config import ConnectionConfig
from voxrelay.lib.exceptions import (
    ConnectionFailure,
    DeliveryError,
    PersistenceError,
    RateLimitedError,
    SessionExpiredError,
    StagingError,
    TerminalAuthError,
    TransientNetworkError,
)
from voxrelay.lib.messages import RATE_LIMIT_TIPS
from voxrelay.lib.timestamps import format_timestamp
from voxrelay.models.events import (
    ConnectionEvent,
    ConnectionStatus,
    CredentialsUpdate,
    MessageEvent,
)
from voxrelay.models.session import ConnectionState, Credentials, RetryPolicy, Session
from voxrelay.services.credentials.store import CredentialStore
from voxrelay.services.presentation.status import StatusPresenter
from voxrelay.services.session.disconnects import classify_disconnect
from voxrelay.services.session.pairing import PairingCodeCoordinator
from voxrelay.services.session.timers import CancellableTimer
from voxrelay.services.transport.base import MessagingTransport, TransportOptions

logger = logging.getLogger(__name__)


class InvalidStateError(Exception):
    """Raised when a state transition is not allowed."""

    pass


class SessionManager:
    """
    Establish and maintain exactly one logical connection.

    Also the outbound channel for the pipeline: send_text() and
    download_media() are safe to call from concurrent pipeline runs.
    """

    def __init__(
        self,
        transport: MessagingTransport,
        store: CredentialStore,
        config: ConnectionConfig,
        presenter: Optional[StatusPresenter] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the session manager.

        Args:
            transport: Messaging transport implementation
            store: Credential persistence
            config: Connection configuration
            presenter: Output for QR codes, pairing codes and fatal status
            retry_policy: Reconnect policy (default: built from config)
        """
        self._transport = transport
        self._store = store
        self._config = config
        self._presenter = presenter or StatusPresenter()
        self._policy = retry_policy or config.retry_policy()

        self.session = Session()
        self._pairing = PairingCodeCoordinator(
            request_code=transport.request_pairing_code,
            presenter=self._presenter,
            expiry=config.pairing_code_expiry,
            settle_delay=config.pairing_settle_delay,
            retry_delay=config.pairing_retry_delay,
            on_expired=self._on_pairing_expired,
        )

        self._message_handler: Optional[Callable[[MessageEvent], object]] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[CancellableTimer] = None
        self._connect_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._stopping = False
        self._qr_displayed = False
        self._attempt = 0

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def pairing(self) -> PairingCodeCoordinator:
        return self._pairing

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None and self._reconnect_timer.pending

    def on_message(self, handler: Callable[[MessageEvent], object]) -> None:
        """
        Register the inbound message handler.

        Only one handler may be registered, so each message is processed once.

        Raises:
            RuntimeError: If a handler is already registered
        """
        if self._message_handler is not None:
            raise RuntimeError("A message handler is already registered")
        self._message_handler = handler

    # Lifecycle

    async def start(self) -> None:
        """Load stored credentials and start connecting (IDLE → CONNECTING)."""
        if self.session.state != ConnectionState.IDLE:
            logger.warning("Session already started")
            return

        credentials = self._store.read()
        if credentials.is_usable:
            logger.info("Found existing authentication, using stored credentials")
            last_connected = self._store.last_connected()
            if last_connected:
                logger.info(f"Last successful connection: {format_timestamp(last_connected)}")
        else:
            logger.info("No usable stored credentials, authentication required")
            credentials = Credentials()

        self.session = Session(credentials=credentials)
        self._stopping = False
        self._closed.clear()

        method = "pairing code" if self._config.uses_pairing_code else "QR code"
        logger.info(f"Starting connection (authentication method: {method})")
        self._begin_connection()

    async def stop(self) -> None:
        """Cancel pending timers, close the transport and return to IDLE."""
        self._stopping = True
        self._cancel_timers()

        if self.session.state in (
            ConnectionState.CONNECTING,
            ConnectionState.AUTHENTICATING,
            ConnectionState.OPEN,
        ):
            self._transition(ConnectionState.CLOSING)

        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")

        task = self._connection_task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._set_idle()
        self._closed.set()
        logger.info("Session stopped")

    async def logout(self) -> None:
        """Log out from the network and discard stored credentials."""
        try:
            await self._transport.logout()
        except Exception as e:
            logger.warning(f"Transport logout failed: {e}")

        await self.stop()
        self._discard_credentials()
        logger.info("Logged out")

    async def wait_closed(self) -> Optional[Exception]:
        """
        Wait until the session stops or fails for good.

        Returns:
            The fatal error, or None after a clean stop
        """
        await self._closed.wait()
        return self.session.fatal_error

    def reconnect(self, delay: float = 0.0) -> bool:
        """
        Schedule a reconnect.

        A no-op while a reconnect is pending, a connection attempt is
        running, the manager is stopping, or the session failed for good.
        The manager schedules its own reconnects after every failure, so in
        normal operation this only confirms that one is already underway.
        It never shortens a pending backoff.

        Returns:
            True if a reconnect was scheduled
        """
        if self.session.fatal_error is not None or self.session.state == ConnectionState.IDLE:
            return False
        if self._connection_task and not self._connection_task.done():
            logger.debug("Connection attempt already running, reconnect ignored")
            return False
        return self._schedule_reconnect(delay, "requested")

    # Outbound channel

    async def send_text(self, recipient_id: str, text: str) -> None:
        """
        Send a text message through the open session.

        Raises:
            DeliveryError: If the session is not open or the transport fails
        """
        if not self.session.is_open:
            raise DeliveryError(
                f"Cannot send while session is {self.session.state.value}",
                recipient_id=recipient_id,
            )

        async with self._send_lock:
            try:
                await self._transport.send_text(recipient_id, text)
            except Exception as e:
                raise DeliveryError(
                    f"Failed to send message to {recipient_id}: {e}",
                    recipient_id=recipient_id,
                ) from e

    async def download_media(self, audio_ref: dict) -> bytes:
        """
        Download a media payload through the transport.

        Raises:
            StagingError: If the download fails
        """
        try:
            return await self._transport.download_media(audio_ref)
        except Exception as e:
            raise StagingError(f"Failed to download media: {e}") from e

    # Connection

    def _begin_connection(self) -> bool:
        if self._connection_task and not self._connection_task.done():
            logger.debug("Connection attempt already running")
            return False

        self._transition(ConnectionState.CONNECTING)
        self._connection_task = asyncio.create_task(
            self._run_connection(), name="session-connection"
        )
        return True

    async def _run_connection(self) -> None:
        async with self._connect_lock:
            self._attempt += 1
            attempt = self._attempt
            self._qr_displayed = False

            try:
                await self._consume_events(attempt)
                failure: ConnectionFailure = TransientNetworkError(
                    "Transport stream ended without a close event"
                )
            except ConnectionFailure as e:
                failure = e
            except PersistenceError as e:
                logger.error(f"Failed to persist credential update: {e}")
                failure = TransientNetworkError(
                    f"Credential update not persisted: {e}", original_error=e
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Connection attempt {attempt} failed: {e}")
                failure = TransientNetworkError(f"Transport error: {e}", original_error=e)

        self._handle_failure(failure, attempt)

    async def _consume_events(self, attempt: int) -> None:
        logger.debug(f"Connection attempt {attempt} starting")
        stream = self._transport.connect(self.session.credentials, self._transport_options())

        try:
            async for event in stream:
                if isinstance(event, CredentialsUpdate):
                    self._persist_credentials(event)
                elif isinstance(event, ConnectionEvent):
                    self._handle_connection_event(event, attempt)
                elif isinstance(event, MessageEvent):
                    self._dispatch_message(event)
                else:
                    logger.warning(f"Ignoring unknown transport event: {event!r}")
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _transport_options(self) -> TransportOptions:
        return TransportOptions(
            print_qr=False,
            connect_timeout=self._config.effective_connect_timeout,
            server_env=self._config.server_env,
        )

    def _handle_connection_event(self, event: ConnectionEvent, attempt: int) -> None:
        if event.qr_payload:
            self._enter_authenticating()
            if not self._config.uses_pairing_code and not self._qr_displayed:
                self._presenter.show_qr(event.qr_payload)
                self._qr_displayed = True

        if event.status == ConnectionStatus.CONNECTING:
            self._enter_authenticating()
            if self._config.uses_pairing_code and not self.session.credentials.is_usable:
                self._pairing.issue(self._config.normalized_phone)

        elif event.status == ConnectionStatus.OPEN:
            self._on_open(attempt)

        elif event.status == ConnectionStatus.CLOSE:
            raise classify_disconnect(event.error)

    def _enter_authenticating(self) -> None:
        if self.session.state == ConnectionState.CONNECTING:
            self._transition(ConnectionState.AUTHENTICATING)

    def _on_open(self, attempt: int) -> None:
        self._transition(ConnectionState.OPEN)
        logger.info(f"Connection established (attempt {attempt})")

        self.session.retry_count = 0
        self.session.last_error = None
        self.session.expired_retry_used = False
        self._pairing.consume()

        try:
            self._store.mark_connected()
        except PersistenceError as e:
            logger.error(f"Failed to record successful connection: {e}")

        self._presenter.show_connected()

    def _persist_credentials(self, update: CredentialsUpdate) -> None:
        # In-memory credentials only change once the store holds them
        updated = copy.deepcopy(self.session.credentials)
        updated.apply(update)
        self._store.write(updated)
        self.session.credentials = updated

    def _dispatch_message(self, event: MessageEvent) -> None:
        if self._message_handler is None:
            logger.debug(f"No message handler registered, dropping {event.message_id}")
            return

        try:
            self._message_handler(event)
        except Exception as e:
            logger.exception(f"Message handler failed for {event.message_id}: {e}")

    def _on_pairing_expired(self) -> None:
        if (
            not self._stopping
            and self.session.state == ConnectionState.AUTHENTICATING
            and not self.session.credentials.is_usable
        ):
            logger.info("Requesting a new pairing code")
            self._pairing.issue(self._config.normalized_phone)

    # Failure handling

    def _handle_failure(self, failure: ConnectionFailure, attempt: int) -> None:
        self.session.last_error = failure.message

        if self._stopping:
            logger.info(f"Connection attempt {attempt} ended during shutdown")
            self._set_idle()
            return

        logger.warning(f"Connection attempt {attempt}: {failure.message}")

        if isinstance(failure, TerminalAuthError):
            logger.warning("Logged out. Not attempting to reconnect.")
            self._discard_credentials()
            self._fail(failure)
            return

        if isinstance(failure, SessionExpiredError) and not self.session.expired_retry_used:
            self.session.expired_retry_used = True
            logger.warning("Session expired due to inactivity, refreshing session")
            try:
                self._store.backup()
            except PersistenceError as e:
                logger.error(f"Error handling credential backup: {e}")
            self._schedule_reconnect(self._config.session_expired_cooldown, "session expired")
            return

        cooldown = 0.0
        if isinstance(failure, RateLimitedError):
            logger.warning("Server IP appears to be blocked. Consider the following options:")
            for number, tip in enumerate(RATE_LIMIT_TIPS, start=1):
                logger.warning(f"{number}. {tip}")
            cooldown = self._config.rate_limit_cooldown

        self.session.retry_count += 1
        if not self._policy.allows(self.session.retry_count):
            logger.error(
                f"Maximum reconnection attempts ({self._policy.max_attempts}) reached. "
                "Please check your network or try again later."
            )
            self._fail(failure)
            return

        delay = cooldown + self._policy.delay_for(self.session.retry_count)
        self._schedule_reconnect(delay, type(failure).__name__)

    def _schedule_reconnect(self, delay: float, reason: str) -> bool:
        if self._stopping:
            return False
        if self.reconnect_pending:
            logger.debug("Reconnect already pending, ignoring")
            return False

        self._transition(ConnectionState.BACKOFF)
        logger.info(
            f"Reconnection attempt {self.session.retry_count} scheduled in "
            f"{delay:.1f} seconds ({reason})"
        )
        self._reconnect_timer = CancellableTimer(
            delay, self._on_reconnect_due, name="session-reconnect"
        ).start()
        return True

    async def _on_reconnect_due(self) -> None:
        self._reconnect_timer = None
        if self._stopping:
            return
        logger.info(f"Executing reconnection attempt {self.session.retry_count}...")
        self._begin_connection()

    def _fail(self, error: ConnectionFailure) -> None:
        self.session.fatal_error = error
        self._cancel_timers()
        self._set_idle()
        self._presenter.show_fatal(error)
        self._closed.set()

    def _discard_credentials(self) -> None:
        try:
            self._store.backup()
            self._store.clear()
        except PersistenceError as e:
            logger.error(f"Failed to discard stored credentials: {e}")
        self.session.credentials = Credentials()

    def _cancel_timers(self) -> None:
        if self._reconnect_timer:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        self._pairing.cancel()

    # State

    def _transition(self, new_state: ConnectionState) -> None:
        current = self.session.state
        if current == new_state:
            return
        if not current.can_transition_to(new_state):
            raise InvalidStateError(
                f"Cannot transition from {current.value} to {new_state.value}"
            )
        logger.debug(f"Session state {current.value} -> {new_state.value}")
        self.session.state = new_state

    def _set_idle(self) -> None:
        if self.session.state != ConnectionState.IDLE:
            self._transition(ConnectionState.IDLE)
