"""Exception types raised by the ingestion pipeline and the chat pipeline."""

from typing import Any, Dict, Optional


class ProcessingError(Exception):
    """Base error for a failed ingestion stage."""

    stage = "error"
    retryable = False

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        if retryable is not None:
            self.retryable = retryable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "stage": self.stage,
            "retryable": self.retryable,
            "context": self.context,
        }


class DocumentNotFoundError(ProcessingError):
    stage = "download"


class DownloadError(ProcessingError):
    stage = "download"
    retryable = True


class PDFExtractionError(ProcessingError):
    stage = "extract"


class EmbeddingError(ProcessingError):
    stage = "embed"
    retryable = True


class StorageError(ProcessingError):
    """Raised when chunk rows cannot be persisted."""

    stage = "store"


class InvalidStatusTransition(Exception):
    """Raised when an upload status change would break the state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move upload from '{current}' to '{target}'")
        self.current = current
        self.target = target


class ChatRequestError(Exception):
    """A gated chat rejection that maps onto a structured client response."""

    status_code = 400

    def __init__(
        self,
        error: str,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **payload: Any,
    ):
        super().__init__(message or error)
        self.error = error
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        body.update(self.payload)
        return body


class ValidationFailed(ChatRequestError):
    status_code = 400


class TooManyDocuments(ChatRequestError):
    status_code = 400


class InvalidDocuments(ChatRequestError):
    status_code = 400


class RateLimitExceeded(ChatRequestError):
    status_code = 429


class ConversationLimitExceeded(ChatRequestError):
    status_code = 403


class AccessDenied(ChatRequestError):
    status_code = 403


class GenerationError(ChatRequestError):
    status_code = 500
