"""Remote document database clients used by the glyph store."""

from .base import Document, DocumentStore, auto_id
from .firestore import FirestoreClient
from .memory import InMemoryDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "FirestoreClient",
    "InMemoryDocumentStore",
    "auto_id",
]
