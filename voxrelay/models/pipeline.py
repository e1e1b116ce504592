"""Pipeline result models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PipelineOutcome(str, Enum):
    """
    Outcome of one voice-note pipeline run.

    SUCCESS: transcript (and summary, if enabled) delivered
    PARTIAL_FAILURE: summarization failed, transcript still delivered
    FAILURE: nothing usable delivered (staging, transcription or delivery failed)
    """

    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILURE = "FAILURE"


@dataclass
class PipelineResult:
    """
    Result of processing one voice note.

    Attributes:
        message_id: Message the result belongs to
        outcome: Overall outcome
        transcript_text: Transcribed text, empty when transcription failed
        summary_text: Summary, None when disabled or failed
        error_message: Description of the failure, if any
    """

    message_id: str
    outcome: PipelineOutcome
    transcript_text: str = ""
    summary_text: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(
        cls, message_id: str, error_message: str, transcript_text: str = ""
    ) -> "PipelineResult":
        """Create a failed result."""
        return cls(
            message_id=message_id,
            outcome=PipelineOutcome.FAILURE,
            transcript_text=transcript_text,
            error_message=error_message,
        )

    @property
    def delivered(self) -> bool:
        """Whether the transcript reached the sender."""
        return self.outcome != PipelineOutcome.FAILURE
