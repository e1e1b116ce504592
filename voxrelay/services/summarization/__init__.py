"""Summarization provider abstraction layer."""

from voxrelay.services.summarization.anthropic import AnthropicSummarizer
from voxrelay.services.summarization.base import DEFAULT_SUMMARY_PROMPT, Summarizer
from voxrelay.services.summarization.openai import OpenAISummarizer

_PROVIDERS: dict[str, type] = {
    "openai": OpenAISummarizer,
    "anthropic": AnthropicSummarizer,
}


def get_summarizer(name: str, **kwargs) -> Summarizer:
    """
    Get a summarizer instance by name.

    Args:
        name: Provider identifier (e.g., "openai", "anthropic")
        **kwargs: Provider-specific configuration

    Returns:
        Summarizer instance

    Raises:
        ValueError: If provider name is not registered
    """
    if name not in _PROVIDERS:
        available = ", ".join(_PROVIDERS.keys())
        raise ValueError(f"Unknown summarization provider '{name}'. Available: {available}")

    return _PROVIDERS[name](**kwargs)


def register_summarizer(name: str, provider_class: type) -> None:
    """Register a new summarizer class."""
    _PROVIDERS[name] = provider_class


__all__ = [
    "Summarizer",
    "DEFAULT_SUMMARY_PROMPT",
    "OpenAISummarizer",
    "AnthropicSummarizer",
    "get_summarizer",
    "register_summarizer",
]
