from __future__ import annotations


class GlyphShareError(Exception):
    """Base error for glyphshare domain exceptions."""


class InvalidInput(GlyphShareError, ValueError):
    """Raised when a character, image or identity argument is malformed."""


class StorageUnavailable(GlyphShareError):
    """Raised when neither the remote store nor local storage accepted a write.

    The caller still owns the image and can retry without redrawing.
    """


class LocalStorageError(GlyphShareError):
    """Raised when on-device storage cannot be read or written (quota, I/O)."""


class RemoteStoreError(GlyphShareError):
    """Raised when the remote document database reports an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PermissionDenied(RemoteStoreError):
    """The remote rule engine rejected a read or write. Not retried."""


class TransportUnavailable(RemoteStoreError):
    """Network or connectivity failure talking to the remote store. Safe to retry."""
