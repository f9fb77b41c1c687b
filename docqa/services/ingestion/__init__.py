from docqa.services.ingestion.chunk_storage import ChunkStoreWriter
from docqa.services.ingestion.chunking import Chunk, DocumentChunker
from docqa.services.ingestion.embedding import ChunkEmbedder, EmbeddedChunk, EmbeddingProvider, get_embedding_provider
from docqa.services.ingestion.extraction import ExtractedText, extract_text
from docqa.services.ingestion.service import IngestionService
from docqa.services.ingestion.status import ProcessingLogger, ProcessingStatusTracker, is_stuck
from docqa.services.ingestion.summarization import DocumentSummary, Summarizer, get_summarizer

__all__ = [
    "Chunk",
    "ChunkEmbedder",
    "ChunkStoreWriter",
    "DocumentChunker",
    "DocumentSummary",
    "EmbeddedChunk",
    "EmbeddingProvider",
    "ExtractedText",
    "IngestionService",
    "ProcessingLogger",
    "ProcessingStatusTracker",
    "Summarizer",
    "extract_text",
    "get_embedding_provider",
    "get_summarizer",
    "is_stuck",
]
