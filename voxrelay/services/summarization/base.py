"""Summarizer Protocol."""

from typing import Protocol, runtime_checkable

from voxrelay.lib.exceptions import ProviderError

DEFAULT_SUMMARY_PROMPT = "Summarize the message in 1-2 sentences max."


@runtime_checkable
class Summarizer(Protocol):
    """
    Contract for summarization providers.

    Example:
        >>> summarizer = get_summarizer("openai")
        >>> summary = summarizer.summarize(transcript, DEFAULT_SUMMARY_PROMPT)
    """

    @property
    def provider_name(self) -> str:
        """
        Return the canonical name of this provider.

        Contract:
            - MUST return a non-empty, lowercase string
        """
        ...

    def summarize(self, text: str, prompt: str) -> str:
        """
        Summarize a transcript.

        Args:
            text: Transcript to summarize. MUST be non-empty.
            prompt: System instruction describing the summary to produce

        Returns:
            str: Summary text, never empty

        Raises:
            ProviderError: On any failure (network, rate limit, auth,
                timeout, empty response)
        """
        ...


__all__ = ["Summarizer", "ProviderError", "DEFAULT_SUMMARY_PROMPT"]
