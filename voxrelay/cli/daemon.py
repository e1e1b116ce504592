"""Voice-note relay daemon entry point.

Connects the messaging account, then transcribes (and optionally
summarizes) every voice note it receives and replies to the sender.

Usage:
    voxrelay
    voxrelay --verbose
    python -m voxrelay.cli.daemon
"""

import argparse
import asyncio
import logging
import signal
import sys

from voxrelay.lib.config import AppConfig, load_config
from voxrelay.lib.exceptions import ConfigError
from voxrelay.services.orchestrator import VoiceNoteOrchestrator, create_orchestrator

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the daemon."""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "[%(asctime)s] %(levelname)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Per-request logs from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def report_config_error(error: ConfigError) -> None:
    """Print what must be fixed before the daemon can start."""
    if error.missing:
        print("Please set the following environment variables in your .env file:", file=sys.stderr)
        for name in error.missing:
            print(f"- {name}", file=sys.stderr)
    else:
        print(f"Error: {error.message}", file=sys.stderr)


def load_validated_config() -> AppConfig:
    """
    Load configuration and check required settings.

    Raises:
        ConfigError: If settings are missing or invalid
    """
    config = load_config()
    config.validate()
    return config


async def run_daemon(orchestrator: VoiceNoteOrchestrator) -> int:
    """
    Run until a shutdown signal or a fatal session failure.

    Returns:
        Process exit code
    """
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C still raises KeyboardInterrupt
            pass

    exit_code = EXIT_SUCCESS
    stop_wait = asyncio.create_task(stop_requested.wait(), name="stop-signal")
    closed_wait = asyncio.create_task(orchestrator.wait_closed(), name="session-closed")

    try:
        await orchestrator.start()
        logger.info("Daemon running. Press Ctrl+C to stop.")

        await asyncio.wait({stop_wait, closed_wait}, return_when=asyncio.FIRST_COMPLETED)

        if stop_requested.is_set():
            logger.info("Shutdown signal received, stopping...")
        elif closed_wait.done() and closed_wait.result() is not None:
            logger.error(f"Session stopped: {closed_wait.result()}")
            exit_code = EXIT_FAILURE

    finally:
        for task in (stop_wait, closed_wait):
            task.cancel()
        await orchestrator.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        logger.info("Daemon stopped.")

    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Entry point for the daemon."""
    parser = argparse.ArgumentParser(
        description="Transcribe and summarize incoming voice notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    try:
        config = load_validated_config()
        orchestrator = create_orchestrator(config)
    except ConfigError as e:
        report_config_error(e)
        return EXIT_CONFIG_ERROR

    logger.info("=" * 60)
    logger.info("Voice note relay")
    logger.info("=" * 60)

    try:
        return asyncio.run(run_daemon(orchestrator))
    except KeyboardInterrupt:
        logger.info("Daemon stopped by user.")
    except Exception as e:
        logger.exception(f"Daemon failed with error: {e}")
        return EXIT_FAILURE

    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
