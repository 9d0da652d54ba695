"""RAG backend collaborator: store create/upload/query/delete and suggestions."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from docchat.core.config import settings
from docchat.core.exceptions import CredentialError, RagBackendError
from docchat.schemas.chat import GroundingChunk, QueryResult
from docchat.services.file_resolver import ResolvedFile

logger = logging.getLogger(__name__)


EXAMPLE_QUESTIONS_PROMPT = """You are helping a user explore the documents in your file search index.
Suggest {count} short, specific questions a reader could ask about these documents.
Return ONLY a JSON array of strings, no commentary."""

ANSWER_INSTRUCTIONS = """Answer the user's question using the documents in your file search index.
If the documents do not contain the answer, say so plainly."""


class RagBackend(ABC):
    """Remote operations on a RAG store. All of them may fail."""

    @abstractmethod
    def initialize(self, api_key: Optional[str] = None) -> None:
        """Prepare the client. ``api_key`` overrides the configured key."""
        ...

    @abstractmethod
    async def create_rag_store(self, display_name: str) -> str:
        """Create a store and return its identifier."""
        ...

    @abstractmethod
    async def upload_to_rag_store(self, store_id: str, file: ResolvedFile) -> None:
        ...

    @abstractmethod
    async def generate_example_questions(self, store_id: str) -> List[str]:
        ...

    @abstractmethod
    async def file_search(self, store_id: str, message: str) -> QueryResult:
        ...

    @abstractmethod
    async def delete_rag_store(self, store_id: str) -> None:
        ...


def parse_question_list(text: str, limit: int) -> List[str]:
    """Parse a model reply into a list of questions (JSON array, or one per line)."""
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    try:
        data = json.loads(cleaned)
        if isinstance(data, list):
            questions = [str(q).strip() for q in data if str(q).strip()]
            return questions[:limit]
    except json.JSONDecodeError:
        pass

    questions = []
    for line in cleaned.splitlines():
        line = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
        if line:
            questions.append(line)
    return questions[:limit]


class OpenAIRagBackend(RagBackend):
    """RAG backend on OpenAI vector stores and the Responses file_search tool."""

    def __init__(self, model: Optional[str] = None, question_count: Optional[int] = None):
        self.model = model or settings.openai_model or "gpt-4o-mini"
        self.question_count = question_count or settings.example_question_count
        self.client: Optional[AsyncOpenAI] = None
        # Uploaded file ids per store, removed together with the store
        self._store_files: Dict[str, List[str]] = {}

    def initialize(self, api_key: Optional[str] = None) -> None:
        key = api_key or settings.openai_api_key
        if not key:
            raise CredentialError(
                "No API key configured. Set OPENAI_API_KEY or pass apiKey with initChat."
            )

        # Configure client with optional Portkey base URL
        client_config = {"api_key": key}
        if settings.openai_base_url:
            client_config["base_url"] = settings.openai_base_url
        self.client = AsyncOpenAI(**client_config)

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise RagBackendError("RAG backend used before initialize()")
        return self.client

    async def create_rag_store(self, display_name: str) -> str:
        client = self._require_client()
        store = await client.vector_stores.create(name=display_name)
        self._store_files[store.id] = []
        logger.info("Created vector store %s (%s)", store.id, display_name)
        return store.id

    async def upload_to_rag_store(self, store_id: str, file: ResolvedFile) -> None:
        client = self._require_client()
        result = await client.vector_stores.files.upload_and_poll(
            vector_store_id=store_id,
            file=(file.name, file.content, file.mime_type),
        )
        self._store_files.setdefault(store_id, []).append(result.id)

        if result.status != "completed":
            reason = result.last_error.message if result.last_error else result.status
            raise RagBackendError(f"Failed to index {file.name}: {reason}")

        logger.info("Indexed %s into %s (file_id=%s)", file.name, store_id, result.id)

    async def generate_example_questions(self, store_id: str) -> List[str]:
        client = self._require_client()
        response = await client.responses.create(
            model=self.model,
            input=EXAMPLE_QUESTIONS_PROMPT.format(count=self.question_count),
            tools=[{"type": "file_search", "vector_store_ids": [store_id]}],
        )
        return parse_question_list(response.output_text, self.question_count)

    async def file_search(self, store_id: str, message: str) -> QueryResult:
        client = self._require_client()
        response = await client.responses.create(
            model=self.model,
            instructions=ANSWER_INSTRUCTIONS,
            input=message,
            tools=[{"type": "file_search", "vector_store_ids": [store_id]}],
            include=["file_search_call.results"],
        )

        chunks: List[GroundingChunk] = []
        for item in response.output:
            if getattr(item, "type", None) != "file_search_call":
                continue
            for result in item.results or []:
                if result.text:
                    chunks.append(GroundingChunk.from_text(result.text))

        return QueryResult(text=response.output_text, groundingChunks=chunks)

    async def delete_rag_store(self, store_id: str) -> None:
        client = self._require_client()
        await client.vector_stores.delete(store_id)

        for file_id in self._store_files.pop(store_id, []):
            try:
                await client.files.delete(file_id)
            except Exception as e:
                logger.warning("Could not delete file %s of store %s: %s", file_id, store_id, e)

        logger.info("Deleted vector store %s", store_id)


def get_rag_backend() -> RagBackend:
    """Factory for the configured RAG backend."""
    return OpenAIRagBackend()
