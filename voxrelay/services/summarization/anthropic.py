"""Anthropic summarizer using the Messages API over httpx."""

import os

import httpx

from voxrelay.lib.exceptions import ProviderError


class AnthropicSummarizer:
    """
    Summarize transcripts with Anthropic's Claude models.

    Implements the Summarizer Protocol.

    Environment Variables:
        ANTHROPIC_API_KEY: Required. Your Anthropic API key.
        ANTHROPIC_MODEL: Optional. Model to use (default: claude-3-haiku-20240307).
    """

    ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
    DEFAULT_MODEL = "claude-3-haiku-20240307"
    DEFAULT_TIMEOUT = 120
    DEFAULT_MAX_TOKENS = 2000
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        max_tokens: int | None = None,
    ):
        """
        Initialize the Anthropic summarizer.

        Args:
            api_key: Anthropic API key (or from ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-3-haiku-20240307)
            timeout: Request timeout in seconds (default: 120)
            max_tokens: Maximum tokens in the summary (default: 2000)
        """
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._model = model or os.environ.get("ANTHROPIC_MODEL", self.DEFAULT_MODEL)
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._max_tokens = max_tokens or self.DEFAULT_MAX_TOKENS

    @property
    def provider_name(self) -> str:
        """Return the provider identifier."""
        return "anthropic"

    def summarize(self, text: str, prompt: str) -> str:
        """
        Summarize a transcript.

        Raises:
            ProviderError: On any failure
        """
        if not text or not text.strip():
            raise ProviderError("Text to summarize cannot be empty", provider=self.provider_name)

        if not self._api_key:
            raise ProviderError("ANTHROPIC_API_KEY not set", provider=self.provider_name)

        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": prompt,
            "messages": [{"role": "user", "content": text}],
        }

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self.ANTHROPIC_API_URL, headers=headers, json=payload)

                if response.status_code != 200:
                    error_data = response.json() if response.text else {}
                    error_message = error_data.get("error", {}).get(
                        "message", f"HTTP {response.status_code}"
                    )
                    raise ProviderError(
                        f"API error: {error_message}", provider=self.provider_name
                    )

                data = response.json()

                if not data.get("content"):
                    raise ProviderError("No content in response", provider=self.provider_name)

                # Content is an array of blocks
                text_content = "".join(
                    block.get("text", "")
                    for block in data["content"]
                    if block.get("type") == "text"
                ).strip()

                if not text_content:
                    raise ProviderError("Empty response content", provider=self.provider_name)

                return text_content

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
