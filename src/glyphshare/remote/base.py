from __future__ import annotations

import secrets
import string
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

Document = Dict[str, Any]

_AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20


def auto_id() -> str:
    """20-character document id, the same shape the Firebase SDKs generate."""
    return "".join(secrets.choice(_AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


class DocumentStore(ABC):
    """Remote document database seen by the glyph store.

    Decoded documents are plain dicts of field values with the document id
    under ``"id"``. Every write touches a single document and is atomic per
    document; there are no cross-document transactions.
    """

    @abstractmethod
    async def add_document(self, collection: str, fields: Mapping[str, Any]) -> str:
        """Append a new document with a store-assigned id and ``createdAt``."""

    @abstractmethod
    async def merge_fields(self, collection: str, doc_id: str, path: str, mapping: Mapping[str, Any]) -> None:
        """Merge ``mapping`` into the map field ``path``, creating the document if needed."""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document or ``None`` when absent."""

    @abstractmethod
    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]:
        """Return every document whose ``field`` equals ``value`` exactly."""

    async def close(self) -> None:
        return None
