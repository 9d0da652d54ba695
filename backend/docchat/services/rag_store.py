"""Lifecycle of the single RAG store backing the chat session."""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set

from docchat.core.config import settings
from docchat.schemas.chat import QueryResult
from docchat.services.file_resolver import ResolvedFile
from docchat.services.rag_backend import RagBackend

logger = logging.getLogger(__name__)

# How many released store ids are kept for the exactly-once check
RELEASED_HISTORY_LIMIT = 64


class RagStoreManager:
    """
    Wraps the backend store operations and owns the active store identifier.

    Every store created through this manager is deleted at most once:
    ``release`` records the identifier before the delete call is issued, so
    reset, init-failure compensation and teardown can all target the same
    store without a second deletion.
    """

    def __init__(
        self,
        backend: RagBackend,
        name_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        released_history: int = RELEASED_HISTORY_LIMIT,
    ):
        self.backend = backend
        self.name_prefix = name_prefix or settings.store_name_prefix
        self._clock = clock
        self._active_store_id: Optional[str] = None
        # Last-known store for the teardown path; follows _active_store_id
        self._teardown_store_id: Optional[str] = None
        # Insertion-ordered; the oldest id is evicted past the limit
        self._released: Dict[str, None] = {}
        self._released_history = released_history
        self._pending_cleanups: Set[asyncio.Task] = set()

    @property
    def active_store_id(self) -> Optional[str]:
        return self._active_store_id

    @property
    def teardown_store_id(self) -> Optional[str]:
        return self._teardown_store_id

    def _set_active(self, store_id: Optional[str]) -> None:
        self._active_store_id = store_id
        self._teardown_store_id = store_id

    def new_store_name(self) -> str:
        return f"{self.name_prefix}-{int(self._clock() * 1000)}"

    def initialize(self, api_key: Optional[str] = None) -> None:
        self.backend.initialize(api_key)

    async def create_store(self) -> str:
        """Create a store. The caller activates it once it is still wanted."""
        return await self.backend.create_rag_store(self.new_store_name())

    def activate(self, store_id: str) -> None:
        logger.info("Active RAG store is now %s", store_id)
        self._set_active(store_id)

    async def upload(self, store_id: str, file: ResolvedFile) -> None:
        await self.backend.upload_to_rag_store(store_id, file)

    async def generate_example_questions(self, store_id: str) -> List[str]:
        return await self.backend.generate_example_questions(store_id)

    async def query(self, store_id: str, message: str) -> QueryResult:
        return await self.backend.file_search(store_id, message)

    async def release(self, store_id: Optional[str] = None) -> bool:
        """
        Delete a store (the active one by default), at most once per identifier.

        Failures are logged and never raised.

        Returns:
            True if a delete call was issued and succeeded
        """
        target = store_id or self._active_store_id
        if target is None:
            return False

        if target == self._active_store_id:
            self._set_active(None)

        if target in self._released:
            logger.debug("RAG store %s already released", target)
            return False
        self._remember_released(target)

        try:
            await self.backend.delete_rag_store(target)
        except Exception:
            logger.exception("Error deleting RAG store %s", target)
            return False
        return True

    def _remember_released(self, store_id: str) -> None:
        self._released[store_id] = None
        while len(self._released) > self._released_history:
            del self._released[next(iter(self._released))]

    def release_in_background(self) -> Optional[asyncio.Task]:
        """
        Best-effort teardown: schedule deletion of the last-known store
        without awaiting it. Requires a running event loop.
        """
        store_id = self._teardown_store_id
        if store_id is None:
            return None

        task = asyncio.get_running_loop().create_task(self.release(store_id))
        self._pending_cleanups.add(task)
        task.add_done_callback(self._pending_cleanups.discard)
        return task
