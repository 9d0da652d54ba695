"""Turn host file descriptors into uploadable file content."""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from docchat.core.exceptions import FilePayloadError
from docchat.schemas.chat import FilePayload

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "unknown_file"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class ResolvedFile:
    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def decode_base64_payload(data: str, file_name: str) -> bytes:
    """Decode inline base64 content, ignoring embedded whitespace."""
    compact = "".join(data.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FilePayloadError(f"Invalid base64 data for file '{file_name}': {e}") from e


async def fetch_file(url: str, client: httpx.AsyncClient) -> httpx.Response:
    response = await client.get(url)
    if response.is_error:
        raise FilePayloadError(
            f"Failed to fetch file from URL: {url} - {response.reason_phrase}"
        )
    return response


async def resolve_file_payload(
    payload: FilePayload,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> ResolvedFile:
    """
    Resolve a FilePayload into a ResolvedFile.

    Args:
        payload: Descriptor carrying either a url or base64Data + mimeType
        client: Optional shared HTTP client (a short-lived one is created otherwise)
        timeout: Fetch timeout in seconds when no client is given

    Returns:
        ResolvedFile with name, mime type and raw bytes

    Raises:
        FilePayloadError: If neither source is set, the fetch fails or
            the inline data is not valid base64
    """
    name = payload.fileName or DEFAULT_FILE_NAME

    if payload.url:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await fetch_file(payload.url, own_client)
        else:
            response = await fetch_file(payload.url, client)

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        mime_type = payload.mimeType or content_type or DEFAULT_MIME_TYPE
        logger.info("Fetched %s from %s (%d bytes)", name, payload.url, len(response.content))
        return ResolvedFile(name=name, mime_type=mime_type, content=response.content)

    if payload.base64Data and payload.mimeType:
        content = decode_base64_payload(payload.base64Data, name)
        return ResolvedFile(name=name, mime_type=payload.mimeType, content=content)

    raise FilePayloadError(
        "Invalid file payload: must provide url or base64Data with mimeType."
    )
