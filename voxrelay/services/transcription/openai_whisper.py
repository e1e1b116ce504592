"""OpenAI Whisper transcription provider using httpx."""

import logging
import os
from pathlib import Path

import httpx

from voxrelay.lib.exceptions import ProviderError
from voxrelay.lib.paragraphs import group_paragraphs, split_sentences
from voxrelay.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionResult,
    content_type_for,
)

logger = logging.getLogger(__name__)


class OpenAIWhisperProvider(TranscriptionProvider):
    """
    Hosted Whisper transcription via the OpenAI audio API.

    Environment Variables:
        OPENAI_API_KEY: Required. Your OpenAI API key.
        WHISPER_MODEL: Optional. Model to use (default: whisper-1).

    Example:
        >>> provider = OpenAIWhisperProvider()
        >>> result = provider.transcribe(Path("note.ogg"))
        >>> print(result.text)
    """

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "whisper-1"
    DEFAULT_TIMEOUT = 120

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        prompt: str | None = None,
        base_url: str | None = None,
    ):
        """
        Initialize the Whisper provider.

        Args:
            api_key: OpenAI API key (or from OPENAI_API_KEY env var)
            model: Model to use (default: whisper-1)
            timeout: Request timeout in seconds (default: 120)
            prompt: Optional vocabulary/style hint sent with each request
            base_url: API base URL (default: https://api.openai.com/v1)
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._model = model or os.environ.get("WHISPER_MODEL", self.DEFAULT_MODEL)
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._prompt = prompt
        self._base_url = base_url or os.environ.get("OPENAI_BASE_URL", self.DEFAULT_BASE_URL)
        self._api_url = f"{self._base_url.rstrip('/')}/audio/transcriptions"

    @property
    def provider_name(self) -> str:
        return "openai"

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """
        Upload an audio file and return its transcript.

        Raises:
            ProviderError: On any failure
        """
        if not self._api_key:
            raise ProviderError("OPENAI_API_KEY not set", provider=self.provider_name)

        audio_path = Path(audio_path)
        self._check_audio(audio_path)

        headers = {"Authorization": f"Bearer {self._api_key}"}
        data = {"model": self._model, "response_format": "json"}
        if self._prompt:
            data["prompt"] = self._prompt

        try:
            with open(audio_path, "rb") as audio, httpx.Client(timeout=self._timeout) as client:
                response = client.post(
                    self._api_url,
                    headers=headers,
                    data=data,
                    files={"file": (audio_path.name, audio, content_type_for(audio_path))},
                )

                if response.status_code != 200:
                    error_data = response.json() if response.text else {}
                    error_message = error_data.get("error", {}).get(
                        "message", f"HTTP {response.status_code}"
                    )
                    raise ProviderError(
                        f"API error: {error_message}", provider=self.provider_name
                    )

                text = (response.json().get("text") or "").strip()

                if not text:
                    raise ProviderError("Empty transcript", provider=self.provider_name)

                logger.debug(f"Whisper transcribed {audio_path.name}: {len(text)} chars")
                return TranscriptionResult(
                    text=text,
                    paragraphs=group_paragraphs(split_sentences(text)),
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
