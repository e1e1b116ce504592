"""Deepgram transcription provider using httpx.

Responses are validated with pydantic so a malformed body surfaces as a
ProviderError instead of a KeyError deep in the pipeline.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from voxrelay.lib.exceptions import ProviderError
from voxrelay.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionResult,
    content_type_for,
)

logger = logging.getLogger(__name__)


class DeepgramSentence(BaseModel):
    text: str


class DeepgramParagraph(BaseModel):
    sentences: list[DeepgramSentence] = Field(default_factory=list)


class DeepgramParagraphs(BaseModel):
    transcript: str = ""
    paragraphs: list[DeepgramParagraph] = Field(default_factory=list)


class DeepgramAlternative(BaseModel):
    transcript: str
    confidence: float = 0.0
    paragraphs: Optional[DeepgramParagraphs] = None


class DeepgramChannel(BaseModel):
    alternatives: list[DeepgramAlternative] = Field(min_length=1)
    detected_language: Optional[str] = None


class DeepgramResults(BaseModel):
    channels: list[DeepgramChannel] = Field(min_length=1)


class DeepgramMetadata(BaseModel):
    duration: float = 0.0


class DeepgramResponse(BaseModel):
    """Subset of the /v1/listen response body that is used."""

    metadata: DeepgramMetadata = Field(default_factory=DeepgramMetadata)
    results: DeepgramResults


class DeepgramProvider(TranscriptionProvider):
    """
    Hosted transcription via the Deepgram pre-recorded audio API.

    Environment Variables:
        DEEPGRAM_API_KEY: Required. Your Deepgram API key.
        DEEPGRAM_MODEL: Optional. Model to use (default: nova-2).
    """

    DEEPGRAM_API_URL = "https://api.deepgram.com/v1/listen"
    DEFAULT_MODEL = "nova-2"
    DEFAULT_TIMEOUT = 120

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ):
        """
        Initialize the Deepgram provider.

        Args:
            api_key: Deepgram API key (or from DEEPGRAM_API_KEY env var)
            model: Model to use (default: nova-2)
            timeout: Request timeout in seconds (default: 120)
        """
        self._api_key = api_key or os.environ.get("DEEPGRAM_API_KEY")
        self._model = model or os.environ.get("DEEPGRAM_MODEL", self.DEFAULT_MODEL)
        self._timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def provider_name(self) -> str:
        return "deepgram"

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """
        Upload an audio file and return its transcript.

        Raises:
            ProviderError: On any failure
        """
        if not self._api_key:
            raise ProviderError("DEEPGRAM_API_KEY not set", provider=self.provider_name)

        audio_path = Path(audio_path)
        self._check_audio(audio_path)

        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": content_type_for(audio_path),
        }
        params = {
            "model": self._model,
            "smart_format": "true",
            "paragraphs": "true",
            "detect_language": "true",
        }

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(
                    self.DEEPGRAM_API_URL,
                    headers=headers,
                    params=params,
                    content=audio_path.read_bytes(),
                )

                if response.status_code != 200:
                    error_data = response.json() if response.text else {}
                    error_message = (
                        error_data.get("err_msg")
                        or error_data.get("reason")
                        or f"HTTP {response.status_code}"
                    )
                    raise ProviderError(
                        f"API error: {error_message}", provider=self.provider_name
                    )

                body = DeepgramResponse.model_validate(response.json())

        except ValidationError as e:
            raise ProviderError(
                f"Malformed response: {e.error_count()} validation error(s)",
                provider=self.provider_name,
                original_error=e,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Request timed out after {self._timeout}s",
                provider=self.provider_name,
                original_error=e,
            )
        except httpx.RequestError as e:
            raise ProviderError(
                f"Network error: {str(e)}",
                provider=self.provider_name,
                original_error=e,
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Unexpected error: {str(e)}",
                provider=self.provider_name,
                original_error=e,
            )

        channel = body.results.channels[0]
        alternative = channel.alternatives[0]
        text = alternative.transcript.strip()

        if not text:
            raise ProviderError("Empty transcript", provider=self.provider_name)

        paragraphs = []
        if alternative.paragraphs:
            for paragraph in alternative.paragraphs.paragraphs:
                joined = " ".join(s.text.strip() for s in paragraph.sentences if s.text.strip())
                if joined:
                    paragraphs.append(joined)

        logger.debug(f"Deepgram transcribed {audio_path.name}: {len(text)} chars")
        return TranscriptionResult(
            text=text,
            language=channel.detected_language or "",
            duration_seconds=body.metadata.duration,
            paragraphs=paragraphs,
        )
