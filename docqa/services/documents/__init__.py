from docqa.services.documents.chunk_store import ChunkCandidate, ChunkStore, chunk_model_for
from docqa.services.documents.document_service import DocumentService

__all__ = ["ChunkCandidate", "ChunkStore", "DocumentService", "chunk_model_for"]
