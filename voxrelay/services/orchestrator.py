"""Wire the session manager and the voice-note pipeline together."""

import logging
from typing import Optional

from voxrelay.lib.config import AppConfig
from voxrelay.services.credentials.store import CredentialStore
from voxrelay.services.pipeline.processor import MessagePipeline
from voxrelay.services.pipeline.staging import ArtifactStager
from voxrelay.services.presentation.status import StatusPresenter
from voxrelay.services.session.manager import SessionManager
from voxrelay.services.summarization import get_summarizer
from voxrelay.services.summarization.base import Summarizer
from voxrelay.services.transcription import get_transcriber
from voxrelay.services.transcription.base import TranscriptionProvider
from voxrelay.services.transport.base import MessagingTransport, TransportOptions
from voxrelay.services.transport.loader import load_transport

logger = logging.getLogger(__name__)


class VoiceNoteOrchestrator:
    """
    Top-level wiring.

    Owns one SessionManager and one MessagePipeline, registers the
    pipeline as the single inbound message handler, and sequences startup
    and shutdown.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: MessagingTransport,
        transcriber: TranscriptionProvider,
        summarizer: Optional[Summarizer] = None,
        store: Optional[CredentialStore] = None,
        presenter: Optional[StatusPresenter] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Application configuration
            transport: Messaging transport
            transcriber: Transcription provider
            summarizer: Summarization provider, None to disable summaries
            store: Credential store (default: under config.connection.auth_dir)
            presenter: Status output (default: stdout)
        """
        self.config = config
        self.store = store or CredentialStore(config.connection.auth_path)

        self.session_manager = SessionManager(
            transport=transport,
            store=self.store,
            config=config.connection,
            presenter=presenter,
        )

        self.pipeline = MessagePipeline(
            transcriber=transcriber,
            channel=self.session_manager,
            stager=ArtifactStager(config.pipeline.staging_path),
            summarizer=summarizer,
            summary_prompt=config.providers.summary_prompt,
            max_concurrency=config.pipeline.max_concurrency,
        )

        # Single registration: each inbound message is processed once
        self.session_manager.on_message(self.pipeline.submit)

    async def start(self) -> None:
        """Start the session. Messages flow to the pipeline once it opens."""
        logger.info(
            f"Transcription: {self.config.providers.transcription_service}, "
            f"summary: {self.config.providers.ai_service if self.pipeline.summary_enabled else 'disabled'}"
        )
        await self.session_manager.start()

    async def stop(self, timeout: float = 30.0) -> None:
        """Let in-flight voice notes finish while the session is still open, then stop it."""
        await self.pipeline.aclose(timeout=timeout)
        await self.session_manager.stop()

    async def wait_closed(self) -> Optional[Exception]:
        """Wait until the session stops; returns its fatal error, if any."""
        return await self.session_manager.wait_closed()


def create_orchestrator(config: AppConfig) -> VoiceNoteOrchestrator:
    """
    Build an orchestrator from configuration.

    Raises:
        ConfigError: If the transport cannot be loaded
        ValueError: If a provider name is not registered
    """
    connection = config.connection
    providers = config.providers

    transport = load_transport(
        connection.transport,
        TransportOptions(
            connect_timeout=connection.effective_connect_timeout,
            server_env=connection.server_env,
        ),
    )

    transcription_kwargs = {
        "api_key": providers.get_api_key(providers.transcription_service),
        "timeout": providers.timeout,
    }
    if providers.transcription_service == "openai":
        transcription_kwargs["model"] = providers.whisper_model
        transcription_kwargs["prompt"] = providers.transcription_prompt
    else:
        transcription_kwargs["model"] = providers.deepgram_model

    transcriber = get_transcriber(providers.transcription_service, **transcription_kwargs)

    summarizer = None
    if providers.generate_summary:
        model = (
            providers.openai_model if providers.ai_service == "openai" else providers.anthropic_model
        )
        summarizer = get_summarizer(
            providers.ai_service,
            api_key=providers.get_api_key(providers.ai_service),
            model=model,
            timeout=providers.timeout,
            max_tokens=providers.summary_max_tokens,
        )

    return VoiceNoteOrchestrator(
        config=config,
        transport=transport,
        transcriber=transcriber,
        summarizer=summarizer,
    )
