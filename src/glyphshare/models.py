from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidInput

IMAGE_PREFIX = "data:image/"

# Remote collection names and document field names
GLOBAL_GLYPHS_COLLECTION = "globalGlyphs"
USER_GLYPHS_COLLECTION = "userGlyphs"
FIELD_CHARACTER = "character"
FIELD_IMAGE = "image"
FIELD_CREATED_AT = "createdAt"
FIELD_OWNER_ID = "ownerId"
FIELD_CHARACTER_POINTERS = "characterPointers"


def is_valid_character(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def validate_character(value: Any) -> str:
    """Return ``value`` unchanged if it is a non-empty string.

    Characters are matched exactly: no case folding, no Unicode normalisation.
    """
    if not is_valid_character(value):
        raise InvalidInput("Invalid character: must be a non-empty string")
    return value


def validate_image(value: Any) -> str:
    if not isinstance(value, str) or not value.startswith(IMAGE_PREFIX):
        raise InvalidInput(f"Invalid image: must be a data string starting with {IMAGE_PREFIX!r}")
    return value


def validate_identity(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Invalid identity: must be a non-empty string")
    return value


class Provenance(str, Enum):
    OWN = "own"
    GLOBAL = "global"


class GlyphArtifact(BaseModel):
    """One immutable drawn glyph in the shared pool."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store-assigned document id")
    character: str = Field(..., description="Character depicted, matched exactly")
    image: str = Field(..., description="Encoded raster image as a data string")
    created_at: Optional[datetime] = Field(default=None, description="Server-assigned creation time")
    owner_id: str = Field("", description="Contributing identity (provenance only)")

    @field_validator("character")
    @classmethod
    def _check_character(cls, v: str) -> str:
        return validate_character(v)

    @field_validator("image")
    @classmethod
    def _check_image(cls, v: str) -> str:
        return validate_image(v)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "GlyphArtifact":
        """Build an artifact from a decoded ``globalGlyphs`` document."""
        return cls(
            id=doc["id"],
            character=doc.get(FIELD_CHARACTER, ""),
            image=doc.get(FIELD_IMAGE, ""),
            created_at=doc.get(FIELD_CREATED_AT),
            owner_id=doc.get(FIELD_OWNER_ID) or "",
        )


class UserGlyphMap(BaseModel):
    """A user's current choice of artifact per character."""

    owner_id: str
    character_pointers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, owner_id: str, doc: Optional[Dict[str, Any]]) -> "UserGlyphMap":
        pointers: Dict[str, str] = {}
        raw = (doc or {}).get(FIELD_CHARACTER_POINTERS)
        if isinstance(raw, dict):
            pointers = {k: v for k, v in raw.items() if is_valid_character(k) and isinstance(v, str) and v}
        return cls(owner_id=owner_id, character_pointers=pointers)


class ResolvedGlyph(BaseModel):
    model_config = ConfigDict(frozen=True)

    image: str
    provenance: Provenance


class ResolutionSummary(BaseModel):
    """Counts describing how a set of required characters was filled."""

    own: int = 0
    global_: int = Field(0, alias="global")
    fallback: int = 0
    total: int = 0

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_resolution(cls, characters: list[str], resolved: Dict[str, ResolvedGlyph]) -> "ResolutionSummary":
        own = sum(1 for c in characters if c in resolved and resolved[c].provenance is Provenance.OWN)
        shared = sum(1 for c in characters if c in resolved and resolved[c].provenance is Provenance.GLOBAL)
        return cls(own=own, global_=shared, fallback=len(characters) - own - shared, total=len(characters))
