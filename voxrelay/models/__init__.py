"""Data models for the voice-note relay."""

from voxrelay.models.session import ConnectionState, Credentials, RetryPolicy, Session
from voxrelay.models.events import (
    ConnectionEvent,
    ConnectionStatus,
    CredentialsUpdate,
    DisconnectInfo,
    InboundVoiceNote,
    MessageEvent,
)
from voxrelay.models.pipeline import PipelineOutcome, PipelineResult

__all__ = [
    "ConnectionState",
    "Credentials",
    "RetryPolicy",
    "Session",
    "ConnectionEvent",
    "ConnectionStatus",
    "CredentialsUpdate",
    "DisconnectInfo",
    "InboundVoiceNote",
    "MessageEvent",
    "PipelineOutcome",
    "PipelineResult",
]
