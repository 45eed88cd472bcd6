from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..models import FIELD_CREATED_AT
from .base import Document, DocumentStore, auto_id

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store with the remote store's semantics.

    Timestamps come from the store's own clock, never from the caller.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._clock = clock

    def collection(self, name: str) -> Dict[str, Document]:
        """Deep copy of a collection keyed by id (inspection helper)."""
        return copy.deepcopy(self._collections.get(name, {}))

    def count(self, name: str) -> int:
        return len(self._collections.get(name, {}))

    async def add_document(self, collection: str, fields: Mapping[str, Any]) -> str:
        docs = self._collections.setdefault(collection, {})
        doc_id = auto_id()
        while doc_id in docs:
            doc_id = auto_id()
        doc = copy.deepcopy(dict(fields))
        doc[FIELD_CREATED_AT] = self._clock()
        docs[doc_id] = doc
        logger.debug("Added %s/%s", collection, doc_id)
        return doc_id

    async def merge_fields(self, collection: str, doc_id: str, path: str, mapping: Mapping[str, Any]) -> None:
        doc = self._collections.setdefault(collection, {}).setdefault(doc_id, {})
        target = doc.get(path)
        if not isinstance(target, dict):
            target = {}
            doc[path] = target
        target.update(copy.deepcopy(dict(mapping)))

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            return None
        out = copy.deepcopy(doc)
        out["id"] = doc_id
        return out

    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]:
        results: List[Document] = []
        for doc_id, doc in self._collections.get(collection, {}).items():
            if field in doc and doc[field] == value:
                out = copy.deepcopy(doc)
                out["id"] = doc_id
                results.append(out)
        return results
