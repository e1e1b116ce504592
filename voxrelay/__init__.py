"""Voice-note transcription relay for a messaging network."""

__version__ = "0.1.0"
