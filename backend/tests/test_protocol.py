"""Tests for host message parsing and the protocol handler."""

import base64

import pytest
from pydantic import ValidationError

from docchat.core.events import (
    ChatErrorEvent,
    InitChatCommand,
    ResetChatCommand,
    SendMessageCommand,
    parse_host_command,
)
from docchat.services.protocol import ProtocolHandler
from docchat.services.session import SessionStatus


def init_message(*names: str, **extra) -> dict:
    files = [
        {
            "fileName": name,
            "mimeType": "text/plain",
            "base64Data": base64.b64encode(name.encode()).decode(),
        }
        for name in names
    ]
    return {"type": "initChat", "payload": {"files": files, **extra}}


@pytest.fixture
def handler(session, events):
    return ProtocolHandler(session, emit=events)


class TestParseHostCommand:
    def test_init_chat(self):
        command = parse_host_command(init_message("a.pdf", chatDisplayName="Docs", apiKey="sk-1"))

        assert isinstance(command, InitChatCommand)
        assert command.payload.files[0].fileName == "a.pdf"
        assert command.payload.chatDisplayName == "Docs"
        assert command.payload.apiKey == "sk-1"

    def test_send_message(self):
        command = parse_host_command({"type": "sendMessage", "payload": {"message": "hi"}})
        assert isinstance(command, SendMessageCommand)
        assert command.payload.message == "hi"

    def test_reset_without_payload(self):
        assert isinstance(parse_host_command({"type": "resetChat"}), ResetChatCommand)

    def test_send_message_requires_message(self):
        with pytest.raises(ValidationError):
            parse_host_command({"type": "sendMessage", "payload": {}})

    def test_event_serialization(self):
        event = ChatErrorEvent.create("nope")
        assert event.model_dump() == {"type": "chatError", "payload": {"message": "nope"}}


class TestProtocolHandler:
    @pytest.mark.asyncio
    async def test_unknown_type_is_dropped(self, handler, session, events, fake_backend):
        await handler.handle({"type": "openSesame", "payload": {}})

        assert events.events == []
        assert session.status == SessionStatus.INITIALIZING
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            None,
            "initChat",
            [],
            {},
            {"payload": {}},
            {"type": ""},
            {"type": ["initChat"]},
            {"type": {"name": "resetChat"}},
            {"type": 42},
        ],
    )
    async def test_shapeless_messages_are_dropped(self, handler, session, events, fake_backend, data):
        await handler.handle(data)

        assert events.events == []
        assert session.status == SessionStatus.INITIALIZING
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    async def test_init_chat_dispatch(self, handler, session, events):
        await handler.handle(init_message("A.pdf", "B.pdf"))

        assert session.status == SessionStatus.CHATTING
        assert events.types == ["chatReady"]
        assert events.last.payload.documentName == "A.pdf & B.pdf"

    @pytest.mark.asyncio
    async def test_init_chat_with_empty_files(self, handler, session, events):
        await handler.handle({"type": "initChat", "payload": {"files": []}})

        assert events.types == ["chatError"]
        assert session.status == SessionStatus.INITIALIZING

    @pytest.mark.asyncio
    async def test_malformed_payload_surfaces_error(self, handler, session, events):
        await handler.handle({"type": "initChat", "payload": {"files": "a.pdf"}})

        assert events.types == ["chatError"]
        assert events.last.payload.message == "Invalid initChat payload."
        assert session.status == SessionStatus.INITIALIZING

    @pytest.mark.asyncio
    async def test_send_message_before_init(self, handler, session, events):
        await handler.handle({"type": "sendMessage", "payload": {"message": "hello"}})

        assert events.types == ["chatError"]
        assert session.chat_history == []

    @pytest.mark.asyncio
    async def test_full_conversation(self, handler, session, events, fake_backend):
        await handler.handle(init_message("guide.pdf"))
        await handler.handle({"type": "sendMessage", "payload": {"message": "What's inside?"}})
        await handler.handle({"type": "resetChat", "payload": {}})

        assert events.types == ["chatReady", "chatResponse", "chatEnded"]
        assert fake_backend.deleted == ["vs_1"]
        assert session.status == SessionStatus.INITIALIZING


class TestOriginCheck:
    @pytest.mark.asyncio
    async def test_wrong_origin_dropped(self, session, events):
        handler = ProtocolHandler(session, emit=events, expected_origin="https://host.example")

        await handler.handle({"type": "resetChat"}, origin="https://evil.example")
        await handler.handle({"type": "resetChat"}, origin=None)

        assert events.events == []

    @pytest.mark.asyncio
    async def test_expected_origin_accepted(self, session, events):
        handler = ProtocolHandler(session, emit=events, expected_origin="https://host.example")

        await handler.handle({"type": "resetChat"}, origin="https://host.example")

        assert events.types == ["chatEnded"]
