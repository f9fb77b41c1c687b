# Import all models so that Base.metadata has them before running Alembic
from docqa.db.base_class import Base  # noqa: F401
from docqa.db.models import (  # noqa: F401
    ChatConversation,
    Document,
    DocumentChunk,
    DocumentChunkLocal,
    Owner,
    ProcessingLogEntry,
    UploadedDocument,
    UserOwnerAccess,
)
