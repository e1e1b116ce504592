"""Configuration management via environment variables and pydantic-settings."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from voxrelay.lib.exceptions import ConfigError
from voxrelay.models.session import RetryPolicy

PHONE_NUMBER_PATTERN = re.compile(r"^[0-9]{10,15}$")

_SETTINGS_CONFIG = {
    "env_file": ".env",
    "env_file_encoding": "utf-8",
    "extra": "ignore",
    "populate_by_name": True,
}


def normalize_phone_number(raw: str) -> str:
    """Strip everything but digits (E.164 without the plus sign)."""
    return re.sub(r"[^0-9]", "", raw or "")


class ConnectionConfig(BaseSettings):
    """Configuration for the messaging session and its reconnect policy."""

    phone_number: str = Field(
        default="",
        alias="WHATSAPP_PHONE_NUMBER",
        description="Account phone number, E.164 without the plus sign",
    )

    auth_method: Literal["QR_CODE", "PAIRING_CODE"] = Field(
        default="QR_CODE",
        alias="AUTH_METHOD",
        description="Authentication method for new sessions: QR_CODE or PAIRING_CODE",
    )

    transport: str = Field(
        default="",
        alias="WHATSAPP_TRANSPORT",
        description="Transport factory as 'package.module:callable'",
    )

    auth_dir: str = Field(
        default="./auth_info",
        alias="AUTH_DIR",
        description="Directory holding session credentials and backups",
    )

    server_env: bool = Field(
        default=False,
        alias="SERVER_ENV",
        description="Use the conservative server-environment connection profile",
    )

    reconnect_base_delay: float = Field(
        default=5.0,
        alias="RECONNECT_BASE_DELAY",
        description="Base delay in seconds for reconnect backoff",
    )

    reconnect_max_delay: float = Field(
        default=60.0,
        alias="RECONNECT_MAX_DELAY",
        description="Upper bound in seconds for a single reconnect delay",
    )

    reconnect_backoff_factor: float = Field(
        default=1.5,
        alias="RECONNECT_BACKOFF_FACTOR",
        description="Multiplier applied per failed attempt",
    )

    reconnect_max_attempts: int | None = Field(
        default=None,
        alias="RECONNECT_MAX_ATTEMPTS",
        description="Connection attempts before giving up (default 3 on servers, 5 otherwise)",
    )

    session_expired_cooldown: float = Field(
        default=15.0,
        alias="SESSION_EXPIRED_COOLDOWN",
        description="Seconds to wait before reconnecting an expired session",
    )

    rate_limit_cooldown: float = Field(
        default=60.0,
        alias="RATE_LIMIT_COOLDOWN",
        description="Extra seconds to wait when the network blocks the connection",
    )

    pairing_code_expiry: float = Field(
        default=60.0,
        alias="PAIRING_CODE_EXPIRY",
        description="Seconds a pairing code stays valid",
    )

    pairing_settle_delay: float = Field(
        default=5.0,
        alias="PAIRING_SETTLE_DELAY",
        description="Seconds to let the connection settle before requesting a pairing code",
    )

    pairing_retry_delay: float = Field(
        default=15.0,
        alias="PAIRING_RETRY_DELAY",
        description="Seconds before a failed pairing-code request may be retried",
    )

    connect_timeout: float | None = Field(
        default=None,
        alias="CONNECT_TIMEOUT",
        description="Transport connect timeout in seconds (default 120 on servers, 60 otherwise)",
    )

    model_config = _SETTINGS_CONFIG

    @field_validator("auth_method", mode="before")
    @classmethod
    def _upper_auth_method(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def uses_pairing_code(self) -> bool:
        """True when new sessions authenticate with a numeric pairing code."""
        return self.auth_method == "PAIRING_CODE"

    @property
    def normalized_phone(self) -> str:
        """Phone number with non-digits removed."""
        return normalize_phone_number(self.phone_number)

    @property
    def auth_path(self) -> Path:
        """Get the credentials directory as Path."""
        return Path(self.auth_dir)

    @property
    def max_attempts(self) -> int:
        """Effective connection attempt budget."""
        if self.reconnect_max_attempts is not None:
            return self.reconnect_max_attempts
        return 3 if self.server_env else 5

    @property
    def effective_connect_timeout(self) -> float:
        """Effective transport connect timeout in seconds."""
        if self.connect_timeout is not None:
            return self.connect_timeout
        return 120.0 if self.server_env else 60.0

    def retry_policy(self) -> RetryPolicy:
        """Build the immutable reconnect policy."""
        return RetryPolicy(
            base_delay=self.reconnect_base_delay,
            max_delay=self.reconnect_max_delay,
            max_attempts=self.max_attempts,
            backoff_factor=self.reconnect_backoff_factor,
        )


class ProviderConfig(BaseSettings):
    """Configuration for transcription and summarization providers."""

    ai_service: Literal["openai", "anthropic"] = Field(
        default="openai",
        alias="AI_SERVICE",
        description="Summarization provider: openai or anthropic",
    )

    transcription_service: Literal["openai", "deepgram"] = Field(
        default="openai",
        alias="VOICE_TRANSCRIPTION_SERVICE",
        description="Transcription provider: openai or deepgram",
    )

    openai_api_key: str | None = Field(
        default=None, alias="OPENAI_API_KEY", description="OpenAI API key"
    )

    anthropic_api_key: str | None = Field(
        default=None, alias="ANTHROPIC_API_KEY", description="Anthropic API key"
    )

    deepgram_api_key: str | None = Field(
        default=None, alias="DEEPGRAM_API_KEY", description="Deepgram API key"
    )

    openai_model: str = Field(default="gpt-3.5-turbo", alias="OPENAI_MODEL")

    anthropic_model: str = Field(default="claude-3-haiku-20240307", alias="ANTHROPIC_MODEL")

    whisper_model: str = Field(default="whisper-1", alias="WHISPER_MODEL")

    deepgram_model: str = Field(default="nova-2", alias="DEEPGRAM_MODEL")

    generate_summary: bool = Field(
        default=True,
        alias="GENERATE_SUMMARY",
        description="Send an AI summary before the transcript",
    )

    summary_prompt: str = Field(
        default="Summarize the message in 1-2 sentences max.",
        alias="SUMMARY_PROMPT",
        description="System prompt for summarization",
    )

    summary_max_tokens: int = Field(default=2000, alias="SUMMARY_MAX_TOKENS")

    transcription_prompt: str | None = Field(
        default=None,
        alias="TRANSCRIPTION_PROMPT",
        description="Optional vocabulary/style hint sent with Whisper requests",
    )

    timeout: int = Field(
        default=120, alias="PROVIDER_TIMEOUT", description="Request timeout in seconds"
    )

    model_config = _SETTINGS_CONFIG

    @field_validator("ai_service", "transcription_service", mode="before")
    @classmethod
    def _lower_service(cls, value):
        return value.lower() if isinstance(value, str) else value

    def get_api_key(self, provider: str) -> str | None:
        """Get the API key for the given provider."""
        if provider == "openai":
            return self.openai_api_key
        elif provider == "anthropic":
            return self.anthropic_api_key
        elif provider == "deepgram":
            return self.deepgram_api_key

        return None


class PipelineConfig(BaseSettings):
    """Configuration for the voice-note pipeline."""

    staging_dir: str = Field(
        default="./staging",
        alias="STAGING_DIR",
        description="Directory for temporary voice-note artifacts",
    )

    max_concurrency: int = Field(
        default=4,
        alias="PIPELINE_MAX_CONCURRENCY",
        description="Voice notes processed at the same time",
        ge=1,
    )

    model_config = _SETTINGS_CONFIG

    @property
    def staging_path(self) -> Path:
        """Get staging directory as Path."""
        return Path(self.staging_dir)


@dataclass
class AppConfig:
    """
    Complete application configuration.

    Built once at startup by load_config() and passed by reference to the
    session manager, the pipeline and the provider factories.
    """

    connection: ConnectionConfig
    providers: ProviderConfig
    pipeline: PipelineConfig

    def missing_settings(self) -> list[str]:
        """Names of required environment variables that are not set."""
        missing = []

        if not self.connection.phone_number:
            missing.append("WHATSAPP_PHONE_NUMBER")

        if not self.connection.transport:
            missing.append("WHATSAPP_TRANSPORT")

        required_keys = {self.providers.transcription_service}
        if self.providers.generate_summary:
            required_keys.add(self.providers.ai_service)

        for provider in sorted(required_keys):
            if not self.providers.get_api_key(provider):
                missing.append(f"{provider.upper()}_API_KEY")

        return missing

    def validate(self) -> None:
        """
        Validate that required configuration is present and well-formed.

        Raises:
            ConfigError: If required settings are missing or malformed
        """
        missing = self.missing_settings()
        if missing:
            raise ConfigError(
                f"Missing required settings: {', '.join(missing)}",
                missing=missing,
            )

        if self.connection.uses_pairing_code and not PHONE_NUMBER_PATTERN.match(
            self.connection.normalized_phone
        ):
            raise ConfigError(
                "WHATSAPP_PHONE_NUMBER must be in E.164 format without the plus sign "
                "(e.g., 12345678901)"
            )


def load_config() -> AppConfig:
    """
    Load configuration from environment variables and .env.

    Raises:
        ConfigError: If a setting has an invalid value
    """
    try:
        return AppConfig(
            connection=ConnectionConfig(),
            providers=ProviderConfig(),
            pipeline=PipelineConfig(),
        )
    except ValidationError as e:
        invalid = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        raise ConfigError(f"Invalid configuration: {e}", missing=invalid) from e
