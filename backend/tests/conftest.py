"""Shared fixtures: an in-memory RAG backend and a session wired to it."""

import asyncio
import base64
from typing import List, Optional

import pytest

from docchat.core.events import HostEvent
from docchat.schemas.chat import FilePayload, GroundingChunk, QueryResult
from docchat.services.file_resolver import ResolvedFile
from docchat.services.rag_backend import RagBackend
from docchat.services.rag_store import RagStoreManager
from docchat.services.session import ChatSession


class FakeRagBackend(RagBackend):
    """Records every call; individual operations can be told to fail."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.stores: dict[str, List[str]] = {}
        self.deleted: List[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.questions = ["What is this about?", "Who wrote it?"]
        self.answer = QueryResult(
            text="It is about testing.",
            groundingChunks=[GroundingChunk.from_text("testing is important")],
        )
        self._counter = 0
        self.gates: dict[str, asyncio.Event] = {}
        self.reached: dict[str, asyncio.Event] = {}

    def hold(self, operation: str) -> asyncio.Event:
        """Make the next calls of an operation wait until the returned event is set."""
        self.gates[operation] = asyncio.Event()
        self.reached[operation] = asyncio.Event()
        return self.gates[operation]

    async def _checkpoint(self, operation: str):
        if operation in self.gates:
            self.reached[operation].set()
            await self.gates[operation].wait()

    def _maybe_fail(self, operation: str):
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def initialize(self, api_key: Optional[str] = None) -> None:
        self.calls.append(("initialize", api_key))
        self._maybe_fail("initialize")

    async def create_rag_store(self, display_name: str) -> str:
        self.calls.append(("create", display_name))
        await self._checkpoint("create")
        self._maybe_fail("create")
        self._counter += 1
        store_id = f"vs_{self._counter}"
        self.stores[store_id] = []
        return store_id

    async def upload_to_rag_store(self, store_id: str, file: ResolvedFile) -> None:
        self.calls.append(("upload", store_id, file.name))
        await self._checkpoint("upload")
        self._maybe_fail("upload")
        self.stores[store_id].append(file.name)

    async def generate_example_questions(self, store_id: str) -> List[str]:
        self.calls.append(("questions", store_id))
        self._maybe_fail("questions")
        return list(self.questions)

    async def file_search(self, store_id: str, message: str) -> QueryResult:
        self.calls.append(("search", store_id, message))
        await self._checkpoint("search")
        self._maybe_fail("search")
        return self.answer

    async def delete_rag_store(self, store_id: str) -> None:
        self.calls.append(("delete", store_id))
        self.deleted.append(store_id)
        self._maybe_fail("delete")

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


class EventRecorder:
    def __init__(self):
        self.events: List[HostEvent] = []

    async def __call__(self, event: HostEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [event.type for event in self.events]

    @property
    def last(self) -> HostEvent:
        return self.events[-1]


def text_file(name: str, content: str = "hello") -> FilePayload:
    return FilePayload(
        fileName=name,
        mimeType="text/plain",
        base64Data=base64.b64encode(content.encode()).decode(),
    )


@pytest.fixture
def fake_backend():
    return FakeRagBackend()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def store_manager(fake_backend):
    return RagStoreManager(fake_backend, name_prefix="chat-session", clock=lambda: 1700000000.5)


@pytest.fixture
def session(store_manager, events):
    return ChatSession(store_manager, emit=events, ready_delay=0)


@pytest.fixture
def make_file():
    return text_file
