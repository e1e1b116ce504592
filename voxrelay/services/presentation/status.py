"""Human-facing connection status output.

QR payloads and pairing codes have to reach the person holding the phone,
so they are printed to the terminal in addition to being logged.
"""

import logging
import sys
from typing import TextIO

from voxrelay.lib.messages import PAIRING_INSTRUCTIONS, PAIRING_TIPS, QR_HINT

logger = logging.getLogger(__name__)

BANNER = "=" * 39


class StatusPresenter:
    """Print authentication prompts and session status."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout

    def _print(self, text: str = "") -> None:
        print(text, file=self._stream, flush=True)

    def show_qr(self, payload: str) -> None:
        """Show a scannable code payload."""
        logger.info("QR code received, waiting for scan")
        self._print("\nScan this QR code to log in:")
        self._print(payload)
        self._print(f"\n{QR_HINT}")

    def show_pairing_code(self, code: str, expires_in: float) -> None:
        """Show a numeric pairing code."""
        logger.info("Pairing code received")
        self._print(f"\n{BANNER}")
        self._print(f"PAIRING CODE: {code}")
        self._print(f"{BANNER}\n")
        self._print(PAIRING_INSTRUCTIONS)
        self._print(f"\nThis code will remain valid for {int(expires_in)} seconds.\n")

    def show_pairing_failure(self, error: Exception) -> None:
        """Show troubleshooting tips after a failed pairing request."""
        self._print("\nTROUBLESHOOTING TIPS:")
        for number, tip in enumerate(PAIRING_TIPS, start=1):
            self._print(f"{number}. {tip}")

    def show_connected(self) -> None:
        self._print("Connection established successfully!")

    def show_fatal(self, error: Exception) -> None:
        """Show why the session stopped for good."""
        self._print(f"\nSession stopped: {error}")
