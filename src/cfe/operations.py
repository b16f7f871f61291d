"""
Data-access collaborator boundary.

The engine never talks HTTP itself. A session is handed an object that
implements ``DataOperations``; every method is a coroutine returning the
decoded JSON reply body, or raising ``TransportError``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from cfe.model import FormEngineError


class FailureType(Enum):
    """How a collaborator call failed."""
    TRANSPORT = "TRANSPORT"
    NOT_FOUND = "NOT_FOUND"
    CBE_REST_API = "CBE_REST_API"
    UNEXPECTED = "UNEXPECTED"


class TransportError(FormEngineError):
    """
    Raised by a DataOperations implementation when a call fails.

    The engine never retries; it propagates this to its caller.
    """

    def __init__(self, failure_type: FailureType, message: str = "", status: Optional[int] = None,
                 body: Optional[Dict[str, Any]] = None):
        super().__init__(message or failure_type.value)
        self.failure_type = failure_type
        self.status = status
        self.body = body if body is not None else {}


@dataclass(frozen=True)
class MultipartPart:
    name: str
    content: bytes
    filename: Optional[str] = None
    content_type: str = "application/octet-stream"


@dataclass
class MultipartRequest:
    """A multipart body: binary file parts plus one JSON ``requestBody`` part."""

    parts: List[MultipartPart] = field(default_factory=list)

    def get(self, name: str) -> Optional[MultipartPart]:
        for part in self.parts:
            if part.name == name:
                return part
        return None

    def names(self) -> List[str]:
        return [part.name for part in self.parts]


class DataOperations(Protocol):
    async def get(self, uri: str) -> Dict[str, Any]: ...

    async def new(self, uri: str) -> Dict[str, Any]: ...

    async def save(self, uri: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, uri: str) -> Dict[str, Any]: ...

    async def upload(self, uri: str, request: MultipartRequest) -> Dict[str, Any]: ...


class ChangeOperations(Protocol):
    """Lock/change-manager endpoints used by ChangeSession."""

    async def get_lock_state(self) -> Dict[str, Any]: ...

    async def commit_changes(self) -> Dict[str, Any]: ...

    async def discard_changes(self) -> Dict[str, Any]: ...
