"""Pydantic schemas shared by the chat session, the RAG backend and the host protocol."""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


ChatRole = Literal["user", "model"]


class RetrievedContext(BaseModel):
    text: Optional[str] = None


class GroundingChunk(BaseModel):
    """Citation snippet returned alongside an answer."""
    retrievedContext: Optional[RetrievedContext] = None

    @classmethod
    def from_text(cls, text: str) -> "GroundingChunk":
        return cls(retrievedContext=RetrievedContext(text=text))


class QueryResult(BaseModel):
    text: str
    groundingChunks: List[GroundingChunk] = Field(default_factory=list)


class MessagePart(BaseModel):
    text: str


class ChatMessage(BaseModel):
    role: ChatRole
    parts: List[MessagePart]
    groundingChunks: Optional[List[GroundingChunk]] = None

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role="user", parts=[MessagePart(text=text)])

    @classmethod
    def reply(
        cls, text: str, grounding_chunks: Optional[List[GroundingChunk]] = None
    ) -> "ChatMessage":
        return cls(role="model", parts=[MessagePart(text=text)], groundingChunks=grounding_chunks)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


class FilePayload(BaseModel):
    """
    File descriptor sent by the host.

    Exactly one content source is expected: ``url``, or ``base64Data`` together
    with ``mimeType``. The check happens when the payload is resolved, not here,
    so a bad descriptor fails the upload sequence instead of the whole command.
    """
    fileName: str = ""
    mimeType: Optional[str] = None
    url: Optional[str] = None
    base64Data: Optional[str] = None
