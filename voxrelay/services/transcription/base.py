"""Base interface for transcription providers.

This module defines the TranscriptionProvider abstract base class and the
TranscriptionResult dataclass shared by the hosted speech-to-text backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from voxrelay.lib.exceptions import ProviderError

# Voice notes arrive as Opus-in-Ogg; the rest are accepted for completeness.
SUPPORTED_FORMATS = {".ogg", ".oga", ".opus", ".mp3", ".wav", ".m4a", ".webm", ".flac"}

AUDIO_CONTENT_TYPES = {
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".opus": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


@dataclass
class TranscriptionResult:
    """
    Result of a transcription request.

    Attributes:
        text: Transcribed text content
        language: Detected language code, empty if not reported
        duration_seconds: Duration of audio processed, 0.0 if not reported
        paragraphs: Provider-formatted paragraphs, when the provider returns them
    """

    text: str
    language: str = ""
    duration_seconds: float = 0.0
    paragraphs: list[str] = field(default_factory=list)


class TranscriptionProvider(ABC):
    """
    Abstract base class for transcription providers.

    Implementations are synchronous and are called from a worker thread
    by the pipeline.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier."""
        pass

    @abstractmethod
    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """
        Transcribe a single audio file.

        Args:
            audio_path: Path to the staged audio file

        Returns:
            TranscriptionResult with non-empty text

        Raises:
            ProviderError: On any failure, including an empty transcript
        """
        pass

    def _check_audio(self, audio_path: Path) -> None:
        if not audio_path.exists():
            raise ProviderError(
                f"Audio file not found: {audio_path}", provider=self.provider_name
            )
        if audio_path.suffix.lower() not in SUPPORTED_FORMATS:
            raise ProviderError(
                f"Unsupported audio format: {audio_path.suffix}", provider=self.provider_name
            )


def content_type_for(audio_path: Path) -> str:
    """MIME type to declare when uploading an audio file."""
    return AUDIO_CONTENT_TYPES.get(audio_path.suffix.lower(), "application/octet-stream")


__all__ = ["TranscriptionProvider", "TranscriptionResult", "SUPPORTED_FORMATS", "content_type_for"]
