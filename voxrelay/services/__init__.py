"""Service layer: session, pipeline, providers and persistence."""
