"""Host protocol handler: validates inbound messages and dispatches them to the session."""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from docchat.core.events import (
    ChatErrorEvent,
    CommandType,
    HostCommand,
    InitChatCommand,
    ResetChatCommand,
    SendMessageCommand,
    parse_host_command,
)
from docchat.services.session import ChatSession, EventSink

logger = logging.getLogger(__name__)

KNOWN_COMMANDS = {command.value for command in CommandType}


class ProtocolHandler:
    """
    Entry point for every message from the host frame.

    Messages from an unexpected origin, non-object messages, messages
    without a ``type`` and messages of an unknown ``type`` are logged and
    dropped without emitting anything.
    """

    def __init__(
        self,
        session: ChatSession,
        emit: EventSink,
        expected_origin: Optional[str] = None,
    ):
        self.session = session
        self._emit = emit
        self.expected_origin = expected_origin

    def origin_allowed(self, origin: Optional[str]) -> bool:
        if self.expected_origin is None:
            return True
        return origin == self.expected_origin

    async def handle(self, data: Any, origin: Optional[str] = None) -> None:
        if not self.origin_allowed(origin):
            logger.warning("Dropping message from unexpected origin %r", origin)
            return

        if not isinstance(data, dict) or not data.get("type"):
            logger.debug("Dropping message without a type: %r", data)
            return

        message_type = data["type"]
        if not isinstance(message_type, str) or message_type not in KNOWN_COMMANDS:
            logger.warning("Unknown message type received: %r", message_type)
            return

        try:
            command = parse_host_command(data)
        except ValidationError as e:
            logger.warning("Invalid %s payload: %s", message_type, e)
            await self._emit(ChatErrorEvent.create(f"Invalid {message_type} payload."))
            return

        await self.dispatch(command)

    async def dispatch(self, command: HostCommand) -> None:
        match command:
            case InitChatCommand(payload=payload):
                await self.session.init_chat(
                    payload.files,
                    chat_display_name=payload.chatDisplayName,
                    api_key=payload.apiKey,
                )
            case SendMessageCommand(payload=payload):
                await self.session.send_message(payload.message)
            case ResetChatCommand():
                await self.session.reset()
