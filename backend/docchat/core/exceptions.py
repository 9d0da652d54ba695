"""Exception types raised by the chat session engine."""

from openai import AuthenticationError


class FilePayloadError(ValueError):
    """An inbound file descriptor could not be turned into file content."""


class RagBackendError(Exception):
    """A RAG store operation failed on the backend."""


class CredentialError(RagBackendError):
    """The backend credential is missing or was rejected."""


# Substrings (lower-cased) that backends use when a key is rejected
CREDENTIAL_ERROR_MARKERS = (
    "api key not valid",
    "incorrect api key",
    "requested entity was not found",
)


def is_credential_error(error: BaseException) -> bool:
    """Return True if the error means the API key is invalid or missing."""
    if isinstance(error, CredentialError):
        return True

    if isinstance(error, AuthenticationError):
        return True

    message = str(error).lower()
    return any(marker in message for marker in CREDENTIAL_ERROR_MARKERS)
