"""Voice-note pipeline: stage, transcribe, summarize, deliver, clean up.

Each accepted message runs as an independent asyncio task. Within one
message the steps are strictly sequential; across messages there is no
ordering. Pipeline errors are handled here and never reach the session.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Optional, Protocol

from voxrelay.lib.exceptions import DeliveryError, ProviderError, StagingError
from voxrelay.lib.messages import (
    GENERATING_SUMMARY,
    PROCESSING_ERROR,
    SUMMARY_GENERATED,
    SUMMARY_SENT,
    TRANSCRIBING_VOICE_NOTE,
    TRANSCRIPTION_SENT,
    VOICE_NOTE_RECEIVED,
    VOICE_NOTE_TRANSCRIBED,
    format_summary_reply,
    format_transcript_reply,
)
from voxrelay.lib.paragraphs import format_paragraphs
from voxrelay.models.events import InboundVoiceNote, MessageEvent
from voxrelay.models.pipeline import PipelineOutcome, PipelineResult
from voxrelay.services.pipeline.staging import ArtifactStager
from voxrelay.services.summarization.base import DEFAULT_SUMMARY_PROMPT, Summarizer
from voxrelay.services.transcription.base import TranscriptionProvider, TranscriptionResult

logger = logging.getLogger(__name__)


class OutboundChannel(Protocol):
    """What the pipeline needs from the session."""

    def send_text(self, recipient_id: str, text: str) -> Awaitable[None]: ...

    def download_media(self, audio_ref: dict) -> Awaitable[bytes]: ...


class MessagePipeline:
    """
    Turn inbound voice notes into transcript (and summary) replies.

    Attributes:
        summary_enabled: Whether a summary reply precedes the transcript
    """

    RECENT_IDS = 512

    def __init__(
        self,
        transcriber: TranscriptionProvider,
        channel: OutboundChannel,
        stager: ArtifactStager,
        summarizer: Optional[Summarizer] = None,
        summary_prompt: str = DEFAULT_SUMMARY_PROMPT,
        max_concurrency: int = 4,
    ):
        """
        Initialize the pipeline.

        Args:
            transcriber: Configured transcription provider
            channel: Outbound send/download capability (the session manager)
            stager: Staging area for downloaded payloads
            summarizer: Summarization provider, None to disable summaries
            summary_prompt: System prompt for summaries
            max_concurrency: Voice notes processed at the same time
        """
        self._transcriber = transcriber
        self._summarizer = summarizer
        self._channel = channel
        self._stager = stager
        self._summary_prompt = summary_prompt
        self._semaphore = asyncio.Semaphore(max_concurrency)

        self._recent_ids: deque[str] = deque(maxlen=self.RECENT_IDS)
        self._seen: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._closing = False

    @property
    def summary_enabled(self) -> bool:
        return self._summarizer is not None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def accept(self, event: MessageEvent) -> Optional[InboundVoiceNote]:
        """
        Filter an inbound event.

        Returns:
            InboundVoiceNote for voice recordings, None for anything else
        """
        if not event.payload:
            return None
        if event.is_broadcast:
            return None
        if not event.is_voice:
            return None
        return InboundVoiceNote.from_event(event)

    def submit(self, event: MessageEvent) -> Optional[asyncio.Task]:
        """
        Start processing an event in the background.

        Safe to call synchronously from the session's message dispatch.

        Returns:
            The processing task, or None if the event was filtered out, its
            message id was already submitted, or the pipeline is closing
        """
        if self._closing:
            logger.debug(f"Pipeline closing, ignoring message {event.message_id}")
            return None

        note = self.accept(event)
        if note is None:
            return None

        if note.message_id in self._seen:
            logger.debug(f"Duplicate message {note.message_id} ignored")
            return None
        self._remember(note.message_id)

        logger.info(f"{VOICE_NOTE_RECEIVED} [{note.message_id}] from {note.sender_id}")
        task = asyncio.create_task(self._run(note), name=f"pipeline-{note.message_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process(self, note: InboundVoiceNote) -> PipelineResult:
        """
        Run the pipeline steps for one voice note.

        Never raises for pipeline failures; the outcome is in the result.
        """
        try:
            async with self._stager.stage(note, self._channel.download_media) as audio_path:
                logger.info(f"{TRANSCRIBING_VOICE_NOTE} [{note.message_id}]")
                try:
                    transcription = await asyncio.to_thread(
                        self._transcriber.transcribe, audio_path
                    )
                except ProviderError as e:
                    logger.error(f"{PROCESSING_ERROR} [{note.message_id}]: {e.message}")
                    return PipelineResult.failure(note.message_id, e.message)

                logger.info(f"{VOICE_NOTE_TRANSCRIBED} [{note.message_id}]")
                return await self._summarize_and_deliver(note, transcription)

        except StagingError as e:
            logger.error(f"{PROCESSING_ERROR} [{note.message_id}]: {e.message}")
            return PipelineResult.failure(note.message_id, e.message)

    async def aclose(self, timeout: float = 30.0) -> None:
        """
        Stop accepting events and wait for in-flight runs.

        Runs still going after `timeout` seconds are cancelled.
        """
        self._closing = True
        if not self._tasks:
            return

        tasks = list(self._tasks)
        logger.info(f"Waiting for {len(tasks)} voice note(s) in progress")
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} voice note(s) still in progress")
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, note: InboundVoiceNote) -> PipelineResult:
        async with self._semaphore:
            try:
                result = await self.process(note)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"{PROCESSING_ERROR} [{note.message_id}]: {e}")
                result = PipelineResult.failure(note.message_id, f"Unexpected error: {e}")

        logger.info(f"Voice note {note.message_id} finished: {result.outcome.value}")
        return result

    async def _summarize_and_deliver(
        self, note: InboundVoiceNote, transcription: TranscriptionResult
    ) -> PipelineResult:
        transcript = transcription.text
        summary: Optional[str] = None
        outcome = PipelineOutcome.SUCCESS
        error_message: Optional[str] = None

        if self._summarizer is not None:
            logger.info(f"{GENERATING_SUMMARY} [{note.message_id}]")
            try:
                summary = await asyncio.to_thread(
                    self._summarizer.summarize, transcript, self._summary_prompt
                )
                logger.info(f"{SUMMARY_GENERATED} [{note.message_id}]")
            except ProviderError as e:
                logger.warning(
                    f"Summary failed for {note.message_id}, sending transcript only: {e.message}"
                )
                outcome = PipelineOutcome.PARTIAL_FAILURE
                error_message = e.message

        try:
            if summary:
                await self._channel.send_text(note.sender_id, format_summary_reply(summary))
                logger.info(f"{SUMMARY_SENT} [{note.message_id}]")

            await self._channel.send_text(
                note.sender_id, format_transcript_reply(self._reflow(transcription))
            )
            logger.info(f"{TRANSCRIPTION_SENT} [{note.message_id}]")

        except DeliveryError as e:
            logger.error(f"{PROCESSING_ERROR} [{note.message_id}]: {e.message}")
            return PipelineResult.failure(note.message_id, e.message, transcript_text=transcript)

        return PipelineResult(
            message_id=note.message_id,
            outcome=outcome,
            transcript_text=transcript,
            summary_text=summary,
            error_message=error_message,
        )

    def _reflow(self, transcription: TranscriptionResult) -> str:
        if transcription.paragraphs:
            return "\n\n".join(transcription.paragraphs)
        return format_paragraphs(transcription.text)

    def _remember(self, message_id: str) -> None:
        if len(self._recent_ids) == self._recent_ids.maxlen:
            self._seen.discard(self._recent_ids[0])
        self._recent_ids.append(message_id)
        self._seen.add(message_id)
