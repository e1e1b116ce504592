"""Transcription provider abstraction layer."""

from voxrelay.services.transcription.base import TranscriptionProvider, TranscriptionResult
from voxrelay.services.transcription.deepgram import DeepgramProvider
from voxrelay.services.transcription.openai_whisper import OpenAIWhisperProvider

_PROVIDERS: dict[str, type] = {
    "openai": OpenAIWhisperProvider,
    "deepgram": DeepgramProvider,
}


def get_transcriber(name: str, **kwargs) -> TranscriptionProvider:
    """
    Get a transcription provider instance by name.

    Args:
        name: Provider identifier (e.g., "openai", "deepgram")
        **kwargs: Provider-specific configuration

    Returns:
        TranscriptionProvider instance

    Raises:
        ValueError: If provider name is not registered
    """
    if name not in _PROVIDERS:
        available = ", ".join(_PROVIDERS.keys())
        raise ValueError(f"Unknown transcription provider '{name}'. Available: {available}")

    return _PROVIDERS[name](**kwargs)


def register_transcriber(name: str, provider_class: type) -> None:
    """Register a new transcription provider class."""
    _PROVIDERS[name] = provider_class


__all__ = [
    "TranscriptionProvider",
    "TranscriptionResult",
    "OpenAIWhisperProvider",
    "DeepgramProvider",
    "get_transcriber",
    "register_transcriber",
]
