"""Document ingestion into the remote backend."""

from app.services.ingestion.pipeline import IngestionPipeline, UploadPayload

__all__ = ["IngestionPipeline", "UploadPayload"]
