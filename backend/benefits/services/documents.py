from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from benefits.schemas.request import RequestResponse


@runtime_checkable
class DocumentStore(Protocol):
    """Interface for the external renderer/attachment store."""

    async def store(self, snapshot: RequestResponse) -> str:
        """Render and persist a request snapshot, returning an opaque reference."""
        ...


class InMemoryDocumentStore:
    """In-memory stub that keeps snapshots by reference."""

    def __init__(self) -> None:
        self.documents: dict[str, RequestResponse] = {}

    async def store(self, snapshot: RequestResponse) -> str:
        ref = f"doc-{snapshot.id}-{uuid.uuid4().hex[:8]}"
        self.documents[ref] = snapshot
        return ref


_document_store: DocumentStore = InMemoryDocumentStore()


def get_document_store() -> DocumentStore:
    return _document_store


def set_document_store(store: DocumentStore) -> None:
    """Override the store (for testing or production wiring)."""
    global _document_store
    _document_store = store
