"""Load a transport implementation from a 'module:callable' path."""

import importlib
import logging

from voxrelay.lib.exceptions import ConfigError
from voxrelay.services.transport.base import MessagingTransport, TransportOptions

logger = logging.getLogger(__name__)


def load_transport(path: str, options: TransportOptions) -> MessagingTransport:
    """
    Import and build the configured transport.

    Args:
        path: Factory location, e.g. "mybridge.transport:create_transport"
        options: Options passed to the factory

    Returns:
        MessagingTransport instance

    Raises:
        ConfigError: If the path is malformed, cannot be imported, or the
            factory does not return a MessagingTransport
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(
            f"Invalid WHATSAPP_TRANSPORT '{path}'. Expected 'package.module:callable'."
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import transport module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"Transport factory '{attr}' not found in '{module_name}'")

    transport = factory(options)
    if not isinstance(transport, MessagingTransport):
        raise ConfigError(
            f"'{path}' returned {type(transport).__name__}, which is not a MessagingTransport"
        )

    logger.info(f"Transport loaded from {path}")
    return transport
