"""Messaging transport abstraction."""

from voxrelay.services.transport.base import MessagingTransport, TransportEvent, TransportOptions
from voxrelay.services.transport.loader import load_transport

__all__ = ["MessagingTransport", "TransportEvent", "TransportOptions", "load_transport"]
