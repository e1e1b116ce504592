"""User-facing message strings.

Reply formats sent back to the voice-note sender and the status lines
logged while a note moves through the pipeline.
"""

# =============================================================================
# Replies
# =============================================================================

SUMMARY_REPLY = "*Summary:*\n{summary}"
TRANSCRIPT_REPLY = "*Transcript:*\n{transcript}"


def format_summary_reply(summary: str) -> str:
    """Format the summary reply."""
    return SUMMARY_REPLY.format(summary=summary.strip())


def format_transcript_reply(transcript: str) -> str:
    """Format the transcript reply."""
    return TRANSCRIPT_REPLY.format(transcript=transcript.strip())


# =============================================================================
# Pipeline status
# =============================================================================

VOICE_NOTE_RECEIVED = "Voice note received"
TRANSCRIBING_VOICE_NOTE = "Transcribing voice note"
VOICE_NOTE_TRANSCRIBED = "Voice note transcribed"
GENERATING_SUMMARY = "Generating summary"
SUMMARY_GENERATED = "Summary generated"
SUMMARY_SENT = "Summary sent back to the sender"
TRANSCRIPTION_SENT = "Transcription sent back to the sender"
PROCESSING_ERROR = "Failed to process voice note"

# =============================================================================
# Connection status
# =============================================================================

QR_HINT = (
    "Or use the pairing code authentication method by setting "
    "AUTH_METHOD=PAIRING_CODE in your .env file"
)

PAIRING_INSTRUCTIONS = (
    "Enter this code on your WhatsApp mobile app:\n"
    "WhatsApp > Settings > Linked Devices > Link a Device"
)

PAIRING_TIPS = (
    "Make sure your phone number is correctly formatted (no + sign)",
    "Check that your WhatsApp mobile app is up to date",
    "Verify your phone has an active internet connection",
    "If on a server, your IP may be blocked by WhatsApp",
)

RATE_LIMIT_TIPS = (
    "Try again after waiting 10-15 minutes",
    "Generate auth on a non-server device and transfer the auth directory",
    "Try using a residential proxy service",
)
