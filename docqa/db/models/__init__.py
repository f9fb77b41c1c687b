from docqa.db.models.owner import Owner, UserOwnerAccess
from docqa.db.models.document import Document
from docqa.db.models.document_chunk import DocumentChunk, DocumentChunkLocal
from docqa.db.models.uploaded_document import UploadedDocument
from docqa.db.models.processing_log import ProcessingLogEntry
from docqa.db.models.chat_conversation import ChatConversation

# These imports are required to ensure all models are discovered by SQLAlchemy
__all__ = [
    "Owner",
    "UserOwnerAccess",
    "Document",
    "DocumentChunk",
    "DocumentChunkLocal",
    "UploadedDocument",
    "ProcessingLogEntry",
    "ChatConversation",
]
