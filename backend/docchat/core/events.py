"""Typed messages exchanged with the host frame.

Inbound commands and outbound events are closed unions discriminated on
``type``. Adding a command means adding a model here and a case in
``ProtocolHandler.dispatch``.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from docchat.schemas.chat import FilePayload, GroundingChunk


class CommandType(str, Enum):
    INIT_CHAT = "initChat"
    SEND_MESSAGE = "sendMessage"
    RESET_CHAT = "resetChat"


class EventType(str, Enum):
    CHAT_READY = "chatReady"
    CHAT_RESPONSE = "chatResponse"
    CHAT_ERROR = "chatError"
    CHAT_ENDED = "chatEnded"


# ── Inbound: host -> widget ──────────────────────────────────────────

class InitChatPayload(BaseModel):
    files: List[FilePayload]
    chatDisplayName: Optional[str] = None
    apiKey: Optional[str] = None


class SendMessagePayload(BaseModel):
    message: str


class ResetChatPayload(BaseModel):
    pass


class InitChatCommand(BaseModel):
    type: Literal["initChat"]
    payload: InitChatPayload


class SendMessageCommand(BaseModel):
    type: Literal["sendMessage"]
    payload: SendMessagePayload


class ResetChatCommand(BaseModel):
    type: Literal["resetChat"]
    payload: ResetChatPayload = Field(default_factory=ResetChatPayload)


HostCommand = Annotated[
    Union[InitChatCommand, SendMessageCommand, ResetChatCommand],
    Field(discriminator="type"),
]

host_command_adapter: TypeAdapter = TypeAdapter(HostCommand)


def parse_host_command(data: dict) -> HostCommand:
    """Validate a raw host message. Raises pydantic.ValidationError."""
    if data.get("payload") is None:
        data = {**data, "payload": {}}
    return host_command_adapter.validate_python(data)


# ── Outbound: widget -> host ─────────────────────────────────────────

class ChatReadyPayload(BaseModel):
    documentName: str


class ChatResponsePayload(BaseModel):
    text: str
    groundingChunks: List[GroundingChunk]


class ChatErrorPayload(BaseModel):
    message: str


class ChatEndedPayload(BaseModel):
    message: str


class ChatReadyEvent(BaseModel):
    type: Literal["chatReady"] = EventType.CHAT_READY.value
    payload: ChatReadyPayload

    @classmethod
    def create(cls, document_name: str) -> "ChatReadyEvent":
        return cls(payload=ChatReadyPayload(documentName=document_name))


class ChatResponseEvent(BaseModel):
    type: Literal["chatResponse"] = EventType.CHAT_RESPONSE.value
    payload: ChatResponsePayload

    @classmethod
    def create(cls, text: str, grounding_chunks: List[GroundingChunk]) -> "ChatResponseEvent":
        return cls(payload=ChatResponsePayload(text=text, groundingChunks=grounding_chunks))


class ChatErrorEvent(BaseModel):
    type: Literal["chatError"] = EventType.CHAT_ERROR.value
    payload: ChatErrorPayload

    @classmethod
    def create(cls, message: str) -> "ChatErrorEvent":
        return cls(payload=ChatErrorPayload(message=message))


class ChatEndedEvent(BaseModel):
    type: Literal["chatEnded"] = EventType.CHAT_ENDED.value
    payload: ChatEndedPayload

    @classmethod
    def create(cls, message: str) -> "ChatEndedEvent":
        return cls(payload=ChatEndedPayload(message=message))


HostEvent = Union[ChatReadyEvent, ChatResponseEvent, ChatErrorEvent, ChatEndedEvent]
