"""State carried through one chat turn, and its timing breakdown."""

from contextlib import contextmanager
from dataclasses import dataclass, field
import time
from typing import Dict, Iterator, List, Optional

from docqa.db.models.document import Document
from docqa.schemas.chat import HistoryMessage
from docqa.services.chat.models import ModelSelection
from docqa.services.chat.moderation import ModerationResult
from docqa.services.retrieval.retriever import OwnerInfo, RetrievedChunk

TIMED_PHASES = ("auth", "registry", "embedding", "retrieval", "generation", "logging")


class Timings:
    """Wall-clock durations per phase of a chat turn, in milliseconds."""

    def __init__(self, clock=time.perf_counter):
        self._clock = clock
        self.started = clock()
        self.durations: Dict[str, int] = {}

    @contextmanager
    def measure(self, phase: str) -> Iterator[None]:
        start = self._clock()
        try:
            yield
        finally:
            self.durations[phase] = self.durations.get(phase, 0) + int((self._clock() - start) * 1000)

    def elapsed_ms(self) -> int:
        return int((self._clock() - self.started) * 1000)

    def breakdown(self) -> Dict[str, int]:
        result = {f"{phase}_ms": self.durations.get(phase, 0) for phase in TIMED_PHASES}
        result["total_ms"] = self.elapsed_ms()
        return result


@dataclass
class ChatTurn:
    """Everything the gated checks resolved for one question."""

    session_id: str
    message: str
    history: List[HistoryMessage]
    document_slugs: List[str]
    documents: List[Document]
    user_id: Optional[str]
    ip_address: Optional[str]
    embedding_type: str
    owner_info: Optional[OwnerInfo]
    chunk_limit: int
    model: ModelSelection
    moderation: ModerationResult
    timings: Timings = field(default_factory=Timings)
    retrieved: List[RetrievedChunk] = field(default_factory=list)
    retrieval_time_ms: int = 0
    response_text: str = ""
    error: Optional[str] = None

    @property
    def is_multi_document(self) -> bool:
        return len(self.document_slugs) > 1

    @property
    def titles_by_slug(self) -> Dict[str, str]:
        return {doc.slug: doc.title for doc in self.documents}

    @property
    def document_titles(self) -> List[str]:
        return [doc.title for doc in self.documents]
