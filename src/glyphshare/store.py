from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import LocalStorageError, RemoteStoreError, StorageUnavailable
from .local_storage import LocalStorage, glyph_key, glyph_prefix
from .models import (
    FIELD_CHARACTER,
    FIELD_CHARACTER_POINTERS,
    FIELD_IMAGE,
    FIELD_OWNER_ID,
    GLOBAL_GLYPHS_COLLECTION,
    GlyphArtifact,
    USER_GLYPHS_COLLECTION,
    UserGlyphMap,
    validate_character,
    validate_identity,
    validate_image,
)
from .remote.base import DocumentStore

logger = logging.getLogger(__name__)


def _to_artifact(doc: Dict[str, Any]) -> Optional[GlyphArtifact]:
    try:
        return GlyphArtifact.from_document(doc)
    except (ValidationError, KeyError):
        logger.warning("Skipping malformed glyph document %s", doc.get("id"))
        return None


class GlyphStore:
    """Persistence and query layer for drawn glyphs.

    - Remote configured: artifacts are appended to ``globalGlyphs`` and the
      owner's ``userGlyphs`` pointer map is merge-updated one key at a time.
    - Remote absent (``remote=None``): glyphs live in on-device storage under
      ``glyph:{identity}:{character}``; there is no shared pool.

    Absence of the remote is a configuration state. Transient remote errors
    propagate instead of silently switching to local storage.
    """

    def __init__(
        self,
        remote: Optional[DocumentStore],
        local: LocalStorage,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.remote = remote
        self.local = local
        self.rng = rng or random.Random()

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    # ---------- save ----------
    async def save(self, identity: str, character: str, image: str) -> str:
        """Persist a drawn glyph and return its artifact id.

        Raises InvalidInput before any I/O on malformed arguments, and
        StorageUnavailable when local persistence refuses the write.
        PermissionDenied / TransportUnavailable from the remote propagate.
        """
        validate_identity(identity)
        validate_character(character)
        validate_image(image)

        if self.remote is None:
            return self._save_local(identity, character, image)

        artifact_id = await self.remote.add_document(
            GLOBAL_GLYPHS_COLLECTION,
            {FIELD_CHARACTER: character, FIELD_IMAGE: image, FIELD_OWNER_ID: identity},
        )
        logger.info("Saved glyph for %r with id %s", character, artifact_id)

        try:
            await self.remote.merge_fields(
                USER_GLYPHS_COLLECTION, identity, FIELD_CHARACTER_POINTERS, {character: artifact_id}
            )
        except RemoteStoreError:
            # The artifact stays in the pool as history; only the pointer is missing
            logger.error(
                "Pointer update for %r failed; artifact %s is orphaned for %s", character, artifact_id, identity
            )
            raise
        logger.debug("Updated pointer %r -> %s for %s", character, artifact_id, identity)
        return artifact_id

    def _save_local(self, identity: str, character: str, image: str) -> str:
        key = glyph_key(identity, character)
        try:
            self.local.set_item(key, image)
        except LocalStorageError as e:
            logger.error("Failed to save %r to local storage: %s", character, e)
            raise StorageUnavailable(
                "Failed to save: local storage is not available. Keep the drawing and try again."
            ) from e
        logger.info("Saved %r to local storage with key %s", character, key)
        return key

    # ---------- loadOwnArtifacts ----------
    async def load_own_artifacts(self, identity: str) -> Dict[str, str]:
        """Return ``{character: image}`` for the identity's current glyphs."""
        if self.remote is None:
            return self._load_local(identity)

        doc = await self.remote.get_document(USER_GLYPHS_COLLECTION, identity)
        user_map = UserGlyphMap.from_document(identity, doc)
        if not user_map.character_pointers:
            return {}

        pointers = list(user_map.character_pointers.items())
        results = await asyncio.gather(
            *(self.remote.get_document(GLOBAL_GLYPHS_COLLECTION, artifact_id) for _, artifact_id in pointers),
            return_exceptions=True,
        )

        images: Dict[str, str] = {}
        for (character, artifact_id), result in zip(pointers, results):
            if isinstance(result, BaseException):
                logger.error("Error loading glyph %s for %r: %s", artifact_id, character, result)
                continue
            if result is None:
                logger.warning("Pointer %r -> %s references a missing artifact", character, artifact_id)
                continue
            artifact = _to_artifact(result)
            if artifact is not None:
                images[character] = artifact.image
        logger.info("Loaded %d own glyphs for %s", len(images), identity)
        return images

    def _load_local(self, identity: str) -> Dict[str, str]:
        prefix = glyph_prefix(identity)
        try:
            images = {key[len(prefix):]: value for key, value in self.local.items(prefix) if value}
        except LocalStorageError:
            logger.warning("Local storage not readable; no own glyphs for %s", identity, exc_info=True)
            return {}
        # An empty suffix would be a key written by something other than save()
        images.pop("", None)
        logger.info("Loaded %d own glyphs for %s from local storage", len(images), identity)
        return images

    # ---------- queryRandomGlobalArtifact ----------
    async def query_random_global_artifact(self, character: str) -> Optional[str]:
        """Return the image of one artifact for ``character`` chosen uniformly at random.

        ``None`` when the pool has no match or there is no shared pool at all.
        """
        if self.remote is None:
            logger.debug("No shared pool configured; %r will use the default typeface", character)
            return None

        docs = await self.remote.query_equal(GLOBAL_GLYPHS_COLLECTION, FIELD_CHARACTER, character)
        artifacts: List[GlyphArtifact] = [a for a in map(_to_artifact, docs) if a is not None]
        if not artifacts:
            logger.debug("No global glyphs found for %r", character)
            return None
        index = self.rng.randrange(len(artifacts))
        logger.debug("Found %d global glyphs for %r, selected index %d", len(artifacts), character, index)
        return artifacts[index].image
