"""Chat session state machine.

Owns session status, chat history, example questions and the document
label, and drives the RAG store manager through the upload sequence.

State guards run before asynchronous work starts. Each init and reset
advances a generation counter; asynchronous chains re-check it after every
await and stop without committing when a newer init or reset superseded
them.
"""

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, List, Optional

from docchat.core.config import settings
from docchat.core.events import (
    ChatEndedEvent,
    ChatErrorEvent,
    ChatReadyEvent,
    ChatResponseEvent,
    HostEvent,
)
from docchat.core.exceptions import is_credential_error
from docchat.schemas.chat import ChatMessage, FilePayload
from docchat.services.file_resolver import ResolvedFile, resolve_file_payload
from docchat.services.progress import UploadProgress, UploadProgressTracker
from docchat.services.rag_store import RagStoreManager

logger = logging.getLogger(__name__)

EventSink = Callable[[HostEvent], Awaitable[None]]
FileResolver = Callable[[FilePayload], Awaitable[ResolvedFile]]

APOLOGY_TEXT = "Sorry, I encountered an error. Please try again."
INVALID_KEY_MESSAGE = (
    "The API key is invalid or not found. Please ensure a valid API Key is configured."
)
NOT_ACTIVE_MESSAGE = "Chat is not active to send message."
NO_ACTIVE_STORE_MESSAGE = "No active chat session. Please initialize first."
NO_FILES_MESSAGE = "No files provided for chat initialization."
ALREADY_UPLOADING_MESSAGE = "A chat session is already being initialized."


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    UPLOADING = "uploading"
    CHATTING = "chatting"
    ERROR = "error"


class SessionSuperseded(Exception):
    """An async chain found that a newer init or reset replaced its session."""


def document_label(file_names: List[str], display_name: Optional[str] = None) -> str:
    """Human-readable name for the uploaded corpus."""
    if display_name:
        return display_name
    if len(file_names) == 1:
        return file_names[0]
    if len(file_names) == 2:
        return f"{file_names[0]} & {file_names[1]}"
    return f"{len(file_names)} documents"


def format_error(message: str, error: Optional[BaseException]) -> str:
    return f"{message}: {error}" if error is not None else message


class ChatSession:
    """The single chat session of the widget."""

    def __init__(
        self,
        store_manager: RagStoreManager,
        emit: EventSink,
        resolver: Optional[FileResolver] = None,
        ready_delay: Optional[float] = None,
    ):
        self.store_manager = store_manager
        self._emit = emit
        self._resolve = resolver or partial(
            resolve_file_payload, timeout=settings.fetch_timeout_seconds
        )
        self.ready_delay = settings.ready_delay_seconds if ready_delay is None else ready_delay

        self.status = SessionStatus.INITIALIZING
        self.chat_history: List[ChatMessage] = []
        self.example_questions: List[str] = []
        self.document_name = ""
        self.last_error: Optional[str] = None
        self.upload_progress: Optional[UploadProgress] = None
        self.is_query_loading = False
        self._generation = 0

    @property
    def active_store_id(self) -> Optional[str]:
        return self.store_manager.active_store_id

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation:
            raise SessionSuperseded()

    def _clear_conversation(self) -> None:
        self.chat_history = []
        self.example_questions = []
        self.document_name = ""
        self.is_query_loading = False

    async def _enter_error(self, message: str, error: Optional[BaseException] = None) -> None:
        detail = format_error(message, error)
        logger.error("%s", detail, exc_info=error)
        self.last_error = detail
        self.status = SessionStatus.ERROR
        await self._emit(ChatErrorEvent.create(detail))

    # ── initChat ──────────────────────────────────────────────────────

    async def init_chat(
        self,
        files: List[FilePayload],
        chat_display_name: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> None:
        """Run the upload sequence: create store, upload each file, generate suggestions."""
        if self.status == SessionStatus.UPLOADING:
            logger.warning("Ignoring initChat: a session is already being initialized.")
            await self._emit(ChatErrorEvent.create(ALREADY_UPLOADING_MESSAGE))
            return

        if not files:
            logger.warning("Rejecting initChat without files")
            await self._emit(ChatErrorEvent.create(NO_FILES_MESSAGE))
            return

        try:
            self.store_manager.initialize(api_key)
        except Exception as e:
            self._next_generation()
            self._clear_conversation()
            if self.active_store_id:
                await self.store_manager.release()
            await self._enter_error("Initialization failed.", e)
            return

        generation = self._next_generation()
        previous_store_id = self.active_store_id
        self._clear_conversation()
        self.status = SessionStatus.UPLOADING
        self.last_error = None

        tracker = UploadProgressTracker(len(files))
        self.upload_progress = tracker.creating_index()
        logger.info("Starting chat session with %d file(s)", len(files))

        store_id: Optional[str] = None
        try:
            if previous_store_id:
                await self.store_manager.release(previous_store_id)
                self._ensure_current(generation)

            store_id = await self.store_manager.create_store()
            self._ensure_current(generation)
            self.store_manager.activate(store_id)

            file_names: List[str] = []
            for position, payload in enumerate(files, start=1):
                self.upload_progress = tracker.processing_file(position, payload.fileName)
                resolved = await self._resolve(payload)
                self._ensure_current(generation)
                await self.store_manager.upload(store_id, resolved)
                self._ensure_current(generation)
                file_names.append(resolved.name)

            self.upload_progress = tracker.generating_suggestions()
            questions = await self.store_manager.generate_example_questions(store_id)
            self._ensure_current(generation)

            self.upload_progress = tracker.ready()
            await asyncio.sleep(self.ready_delay)
            self._ensure_current(generation)
        except SessionSuperseded:
            logger.info("Upload sequence superseded; discarding its results")
            if store_id:
                await self.store_manager.release(store_id)
            return
        except Exception as e:
            # Compensate before the Error transition is committed
            if store_id:
                await self.store_manager.release(store_id)
            if generation != self._generation:
                logger.info("Upload sequence failed after being superseded: %s", e)
                return
            if is_credential_error(e):
                await self._enter_error(INVALID_KEY_MESSAGE, e)
            else:
                await self._enter_error("Failed to start chat session", e)
            return
        finally:
            if generation == self._generation:
                self.upload_progress = None

        self.example_questions = questions
        self.document_name = document_label(file_names, chat_display_name)
        self.chat_history = []
        self.status = SessionStatus.CHATTING
        logger.info("Chat ready for %s", self.document_name)
        await self._emit(ChatReadyEvent.create(self.document_name))

    # ── sendMessage ───────────────────────────────────────────────────

    async def send_message(self, message: str) -> None:
        """Query the active store; history gets the user turn, then the reply or an apology."""
        if self.status != SessionStatus.CHATTING:
            logger.warning("Cannot send message: Chat is not active.")
            await self._emit(ChatErrorEvent.create(NOT_ACTIVE_MESSAGE))
            return

        store_id = self.active_store_id
        if not store_id:
            await self._emit(ChatErrorEvent.create(NO_ACTIVE_STORE_MESSAGE))
            return

        generation = self._generation
        self.chat_history.append(ChatMessage.user(message))
        self.is_query_loading = True
        try:
            result = await self.store_manager.query(store_id, message)
        except Exception as e:
            if generation != self._generation:
                logger.info("Dropping failed query for a superseded session: %s", e)
                return
            logger.error("Failed to get response", exc_info=e)
            self.chat_history.append(ChatMessage.reply(APOLOGY_TEXT))
            if is_credential_error(e):
                detail = format_error(INVALID_KEY_MESSAGE, e)
            else:
                detail = format_error("Failed to get response", e)
            await self._emit(ChatErrorEvent.create(detail))
            return
        finally:
            if generation == self._generation:
                self.is_query_loading = False

        if generation != self._generation:
            logger.info("Dropping query result for a superseded session")
            return

        self.chat_history.append(ChatMessage.reply(result.text, result.groundingChunks))
        await self._emit(ChatResponseEvent.create(result.text, result.groundingChunks))

    # ── resetChat ─────────────────────────────────────────────────────

    async def reset(self) -> None:
        """Return to Initializing from any state, deleting the active store if there is one."""
        self._next_generation()
        store_id = self.active_store_id

        self._clear_conversation()
        self.upload_progress = None
        self.last_error = None
        self.status = SessionStatus.INITIALIZING

        if store_id:
            self.is_query_loading = True
            try:
                await self.store_manager.release(store_id)
            finally:
                self.is_query_loading = False
            message = "Chat session reset."
        else:
            message = "Chat session reset (no active store)."

        logger.info(message)
        await self._emit(ChatEndedEvent.create(message))

    # ── local actions ─────────────────────────────────────────────────

    def acknowledge_error(self) -> bool:
        """Error -> Initializing without touching any store."""
        if self.status != SessionStatus.ERROR:
            return False
        self.last_error = None
        self.status = SessionStatus.INITIALIZING
        return True

    def teardown(self) -> Optional[asyncio.Task]:
        """
        Host went away: discard the session and fire-and-forget deletion
        of the last-known store.

        In-flight init and query chains are superseded, so nothing they
        finish later is committed or emitted.
        """
        self._next_generation()
        self._clear_conversation()
        self.upload_progress = None
        self.last_error = None
        self.status = SessionStatus.INITIALIZING
        return self.store_manager.release_in_background()

    def snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "documentName": self.document_name,
            "chatHistory": [m.model_dump(exclude_none=True) for m in self.chat_history],
            "exampleQuestions": list(self.example_questions),
            "uploadProgress": self.upload_progress.model_dump() if self.upload_progress else None,
            "isQueryLoading": self.is_query_loading,
            "lastError": self.last_error,
            "hasActiveStore": self.active_store_id is not None,
        }
