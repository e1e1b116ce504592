"""Voice-note processing pipeline."""

from voxrelay.services.pipeline.processor import MessagePipeline, OutboundChannel
from voxrelay.services.pipeline.staging import ArtifactStager

__all__ = ["MessagePipeline", "OutboundChannel", "ArtifactStager"]
