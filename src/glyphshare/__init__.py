"""
glyphshare: a shared pool of hand-drawn glyphs.

This package provides the headless core behind the lettering pages:
- A per-device pseudonymous identity
- A glyph store with an append-only shared pool and per-user pointer maps,
  backed by Firestore when configured and by on-device storage otherwise
- A resolution engine that fills a sentence's characters with the caller's
  own glyphs first and random shared glyphs second

Drawing and rendering surfaces should compose these services via
:func:`glyphshare.app.build_services`.
"""
from importlib.metadata import PackageNotFoundError, version

from .errors import (
    GlyphShareError,
    InvalidInput,
    LocalStorageError,
    PermissionDenied,
    RemoteStoreError,
    StorageUnavailable,
    TransportUnavailable,
)
from .identity import IdentityProvider
from .local_storage import LocalStorage
from .models import GlyphArtifact, Provenance, ResolutionSummary, ResolvedGlyph, UserGlyphMap
from .resolver import DEFAULT_SENTENCE, ResolutionEngine, required_characters
from .store import GlyphStore

try:
    __version__ = version("glyphshare")
except PackageNotFoundError:  # pragma: no cover - during tests without packaging
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "DEFAULT_SENTENCE",
    "GlyphArtifact",
    "GlyphShareError",
    "GlyphStore",
    "IdentityProvider",
    "InvalidInput",
    "LocalStorage",
    "LocalStorageError",
    "PermissionDenied",
    "Provenance",
    "RemoteStoreError",
    "ResolutionEngine",
    "ResolutionSummary",
    "ResolvedGlyph",
    "StorageUnavailable",
    "TransportUnavailable",
    "UserGlyphMap",
    "required_characters",
]
