"""Pydantic schemas for chat requests."""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant", "model"]
    content: str


class ChatRequest(BaseModel):
    """Body accepted by both the buffered and the streamed chat endpoints."""

    message: Optional[str] = None
    history: List[HistoryMessage] = Field(default_factory=list)
    model: str = Field("gemini", description="gemini, grok or grok-reasoning")
    doc: Union[str, List[str]] = Field(..., description="Document slug(s), '+' separated when a string")
    passcode: Optional[str] = None
    session_id: Optional[str] = Field(None, alias="sessionId")
    embedding: Literal["openai", "local"] = "openai"

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())
