"""
Document store interface used by the engine components.

Every component receives a ``DocumentStore`` at construction. The interface
mirrors the document database the application runs on: equality-filtered
reads and an atomic multi-document batch commit. ``MemoryDocumentStore`` is a
complete in-process implementation used by tests and embedded callers; the
SQLite-backed store lives in ``production_sync.database``.
"""

import asyncio
import copy
import logging
import uuid
from abc import ABC
from abc import abstractmethod
from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence

from pydantic import BaseModel
from pydantic import Field

from production_sync.exceptions import InvalidWriteError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Filters = Mapping[str, Any]


class WriteOp(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE_FIELDS = "delete_fields"


class Write(BaseModel):
    """
    One document mutation inside a batch.

    ``create`` fails if the document exists, ``update`` merges ``data`` into
    an existing document and ``delete_fields`` removes ``fields`` from one.
    """

    op: WriteOp
    collection: str = Field(..., min_length=1)
    doc_id: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    fields: List[str] = Field(default_factory=list)

    @classmethod
    def create(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> "Write":
        return cls(op=WriteOp.CREATE, collection=collection, doc_id=doc_id, data=dict(data))

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> "Write":
        return cls(op=WriteOp.UPDATE, collection=collection, doc_id=doc_id, data=dict(data))

    @classmethod
    def delete_fields(cls, collection: str, doc_id: str, fields: Sequence[str]) -> "Write":
        return cls(op=WriteOp.DELETE_FIELDS, collection=collection, doc_id=doc_id, fields=list(fields))


def server_timestamp() -> str:
    """Timestamp stamped onto documents at commit time."""
    return datetime.now(timezone.utc).isoformat()


def matches(document: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    """Check a document against equality filters."""
    if not filters:
        return True
    return all(document.get(field) == value for field, value in filters.items())


def apply_write(existing: Optional[Document], write: Write, stamp: str) -> Document:
    """
    Compute the new state of one document.

    Raises:
        InvalidWriteError: on create over an existing document or a write to a missing one
    """
    if write.op is WriteOp.CREATE:
        if existing is not None:
            raise InvalidWriteError(f"{write.collection}/{write.doc_id} already exists")
        document = dict(write.data)
        document["id"] = write.doc_id
        document["createdAt"] = stamp
        document["updatedAt"] = stamp
        return document

    if existing is None:
        raise InvalidWriteError(f"{write.collection}/{write.doc_id} does not exist")

    document = dict(existing)
    if write.op is WriteOp.UPDATE:
        document.update(write.data)
    else:
        for field in write.fields:
            document.pop(field, None)
    document["id"] = write.doc_id
    document["updatedAt"] = stamp
    return document


def sort_documents(
    documents: List[Document],
    order_by: Optional[str],
    descending: bool = False,
) -> List[Document]:
    if not order_by:
        return documents
    # Documents missing the field sort last in either direction.
    present = [doc for doc in documents if doc.get(order_by) is not None]
    missing = [doc for doc in documents if doc.get(order_by) is None]
    present.sort(key=lambda doc: doc[order_by], reverse=descending)
    return present + missing


class DocumentStore(ABC):
    """Abstract document store client."""

    @abstractmethod
    async def get_all(self, collection: str, filters: Optional[Filters] = None) -> List[Document]:
        """Return every document in ``collection`` matching ``filters``."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return one document by id, or None."""

    @abstractmethod
    async def commit_batch(self, writes: Sequence[Write]) -> None:
        """
        Apply all writes atomically: either every write lands or none does.

        Raises:
            StoreError: if the batch could not be committed
        """

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Filtered read with optional ordering and limit."""
        documents = sort_documents(await self.get_all(collection, filters), order_by, descending)
        if limit is not None:
            documents = documents[:limit]
        return documents

    def new_id(self) -> str:
        """Allocate a document id for a create write."""
        return uuid.uuid4().hex

    async def close(self) -> None:
        """Release any held resources."""

    async def __aenter__(self) -> "DocumentStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class MemoryDocumentStore(DocumentStore):
    """
    In-process document store.

    Batches are applied to a copy of the affected collections and swapped in
    only when every write succeeded.
    """

    def __init__(self, documents: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = asyncio.Lock()
        self.commit_count = 0
        for collection, docs in (documents or {}).items():
            for doc in docs:
                self.seed(collection, doc)

    def seed(self, collection: str, document: Mapping[str, Any]) -> Document:
        """Insert a document directly, bypassing batches and timestamps."""
        if not document.get("id"):
            raise ValueError("Seeded documents need an id")
        stored = copy.deepcopy(dict(document))
        self._collections.setdefault(collection, {})[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def get_all(self, collection: str, filters: Optional[Filters] = None) -> List[Document]:
        async with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collections.get(collection, {}).values()
                if matches(doc, filters)
            ]

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def commit_batch(self, writes: Sequence[Write]) -> None:
        if not writes:
            return

        async with self._lock:
            stamp = server_timestamp()
            staged: Dict[str, Dict[str, Document]] = {}
            for write in writes:
                if write.collection not in staged:
                    staged[write.collection] = dict(self._collections.get(write.collection, {}))
                target = staged[write.collection]
                target[write.doc_id] = apply_write(target.get(write.doc_id), write, stamp)

            self._collections.update(staged)
            self.commit_count += 1

        logger.debug(f"Committed batch of {len(writes)} writes")
