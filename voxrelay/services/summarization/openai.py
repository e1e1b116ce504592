"""OpenAI summarizer using the Chat Completions API over httpx."""

import os

import httpx

from voxrelay.lib.exceptions import ProviderError


class OpenAISummarizer:
    """
    Summarize transcripts with OpenAI chat models.

    Implements the Summarizer Protocol.

    Environment Variables:
        OPENAI_API_KEY: Required. Your OpenAI API key.
        OPENAI_MODEL: Optional. Model to use (default: gpt-3.5-turbo).
        OPENAI_BASE_URL: Optional. API base URL (default: https://api.openai.com/v1).
    """

    DEFAULT_MODEL = "gpt-3.5-turbo"
    DEFAULT_TIMEOUT = 120
    DEFAULT_MAX_TOKENS = 2000
    TEMPERATURE = 0.5

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        max_tokens: int | None = None,
        base_url: str | None = None,
    ):
        """
        Initialize the OpenAI summarizer.

        Args:
            api_key: OpenAI API key (or from OPENAI_API_KEY env var)
            model: Model to use (default: gpt-3.5-turbo)
            timeout: Request timeout in seconds (default: 120)
            max_tokens: Maximum tokens in the summary (default: 2000)
            base_url: API base URL (default: https://api.openai.com/v1)
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._model = model or os.environ.get("OPENAI_MODEL", self.DEFAULT_MODEL)
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._max_tokens = max_tokens or self.DEFAULT_MAX_TOKENS
        self._base_url = base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
        self._api_url = f"{self._base_url.rstrip('/')}/chat/completions"

    @property
    def provider_name(self) -> str:
        """Return the provider identifier."""
        return "openai"

    def summarize(self, text: str, prompt: str) -> str:
        """
        Summarize a transcript.

        Raises:
            ProviderError: On any failure
        """
        if not text or not text.strip():
            raise ProviderError("Text to summarize cannot be empty", provider=self.provider_name)

        if not self._api_key:
            raise ProviderError("OPENAI_API_KEY not set", provider=self.provider_name)

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": text},
            ],
            "max_tokens": self._max_tokens,
            "n": 1,
            "temperature": self.TEMPERATURE,
        }

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self._api_url, headers=headers, json=payload)

                if response.status_code != 200:
                    error_data = response.json() if response.text else {}
                    error_message = error_data.get("error", {}).get(
                        "message", f"HTTP {response.status_code}"
                    )
                    raise ProviderError(
                        f"API error: {error_message}", provider=self.provider_name
                    )

                data = response.json()

                if not data.get("choices"):
                    raise ProviderError("No choices in response", provider=self.provider_name)

                content = (data["choices"][0]["message"].get("content") or "").strip()

                if not content:
                    raise ProviderError("Empty response content", provider=self.provider_name)

                return content

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
            # Re-raise our own errors
            raise
        except Exception as e:
            raise ProviderError(
                f"Unexpected error: {str(e)}",
                provider=self.provider_name,
                original_error=e,
            )
