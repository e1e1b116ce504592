"""Single-flight pairing-code requests.

A pairing code, once requested, is not requested again until it is
consumed (the session opens) or it expires. Requests are issued from the
transport's "connecting" events, which can arrive in bursts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from voxrelay.lib.config import PHONE_NUMBER_PATTERN
from voxrelay.services.presentation.status import StatusPresenter
from voxrelay.services.session.timers import CancellableTimer

logger = logging.getLogger(__name__)


class PairingCodeCoordinator:
    """
    Issue at most one outstanding pairing-code request.

    Attributes:
        expiry: Seconds a displayed code stays valid
        settle_delay: Seconds to wait before requesting, letting the
            connection stabilise
        retry_delay: Seconds before a failed request may be retried
    """

    def __init__(
        self,
        request_code: Callable[[str], Awaitable[Optional[str]]],
        presenter: StatusPresenter,
        expiry: float = 60.0,
        settle_delay: float = 5.0,
        retry_delay: float = 15.0,
        on_expired: Optional[Callable[[], None]] = None,
    ):
        self._request_code = request_code
        self._presenter = presenter
        self.expiry = expiry
        self.settle_delay = settle_delay
        self.retry_delay = retry_delay
        self._on_expired = on_expired

        self._requested = False
        self._request_task: Optional[asyncio.Task] = None
        self._release_timer: Optional[CancellableTimer] = None
        self.current_code: Optional[str] = None

    @property
    def pending(self) -> bool:
        """True while a request is in flight or a code is unexpired."""
        return self._requested

    def issue(self, phone_number: str) -> bool:
        """
        Start a pairing-code request unless one is pending.

        Synchronous so that back-to-back callers observe the flag.

        Returns:
            True if a new request was started
        """
        if self._requested:
            logger.debug("Pairing code already requested, skipping")
            return False

        self._requested = True
        self._request_task = asyncio.create_task(
            self._request(phone_number), name="pairing-code-request"
        )
        return True

    def consume(self) -> None:
        """The session authenticated. Drop the code and any request in flight."""
        if self._request_task and not self._request_task.done():
            self._request_task.cancel()
        self._request_task = None

        if self._release_timer:
            self._release_timer.cancel()
            self._release_timer = None

        self.current_code = None
        self._requested = False

    def cancel(self) -> None:
        """Cancel any in-flight request and expiry timer (shutdown)."""
        if self._requested:
            logger.debug("Pairing code request cancelled")
        self.consume()

    async def _request(self, phone_number: str) -> None:
        try:
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

            if not PHONE_NUMBER_PATTERN.match(phone_number):
                logger.error(
                    "Phone number must be in E.164 format WITHOUT the plus sign "
                    "(e.g. 12345678901)"
                )
                self._release_after(self.retry_delay)
                return

            logger.info(f"Requesting pairing code for {phone_number}...")
            code = await self._request_code(phone_number)

            if not code:
                logger.error("No pairing code received from the network")
                self._release_after(self.retry_delay)
                return

            self.current_code = code
            self._presenter.show_pairing_code(code, self.expiry)
            self._release_after(self.expiry, expired=True)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to request pairing code: {e}")
            self._presenter.show_pairing_failure(e)
            self._release_after(self.retry_delay)

    def _release_after(self, delay: float, expired: bool = False) -> None:
        async def release() -> None:
            self._requested = False
            self.current_code = None
            if expired:
                logger.info("Pairing code expired")
                if self._on_expired:
                    self._on_expired()

        self._release_timer = CancellableTimer(
            delay, release, name="pairing-code-release"
        ).start()
