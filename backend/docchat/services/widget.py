"""Assembles the chat widget engine: one session, its store manager and the host channel."""

from dataclasses import dataclass
from typing import Optional

from docchat.core.config import Settings, settings as default_settings
from docchat.services.event_bus import EventBus
from docchat.services.protocol import ProtocolHandler
from docchat.services.rag_backend import RagBackend, get_rag_backend
from docchat.services.rag_store import RagStoreManager
from docchat.services.session import ChatSession, FileResolver


@dataclass
class ChatWidget:
    session: ChatSession
    protocol: ProtocolHandler
    event_bus: EventBus
    store_manager: RagStoreManager


def create_widget(
    backend: Optional[RagBackend] = None,
    config: Optional[Settings] = None,
    resolver: Optional[FileResolver] = None,
) -> ChatWidget:
    config = config or default_settings
    event_bus = EventBus()
    store_manager = RagStoreManager(
        backend or get_rag_backend(), name_prefix=config.store_name_prefix
    )
    session = ChatSession(
        store_manager,
        emit=event_bus.publish,
        resolver=resolver,
        ready_delay=config.ready_delay_seconds,
    )
    protocol = ProtocolHandler(
        session, emit=event_bus.publish, expected_origin=config.parent_origin
    )
    return ChatWidget(
        session=session,
        protocol=protocol,
        event_bus=event_bus,
        store_manager=store_manager,
    )
