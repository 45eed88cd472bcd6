from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .config import AppConfig
from .identity import IdentityProvider
from .local_storage import LocalStorage
from .models import ResolvedGlyph
from .remote.base import DocumentStore
from .remote.firestore import FirestoreClient
from .resolver import ResolutionEngine
from .store import GlyphStore

logger = logging.getLogger(__name__)


@dataclass
class GlyphServices:
    """The two narrow entry points offered to drawing and rendering surfaces,
    plus the identity they act as.

    - Drawing surface: ``await services.save(character, image)``
    - Rendering surface: ``await services.resolve(characters)``
    """

    identity_provider: IdentityProvider
    store: GlyphStore
    engine: ResolutionEngine

    def identity(self) -> str:
        return self.identity_provider.get_or_create_identity()

    async def save(self, character: str, image: str, identity: Optional[str] = None) -> str:
        return await self.store.save(identity or self.identity(), character, image)

    async def resolve(self, characters: Sequence[str], identity: Optional[str] = None) -> Dict[str, ResolvedGlyph]:
        return await self.engine.resolve(identity or self.identity(), characters)

    async def close(self) -> None:
        if self.store.remote is not None:
            await self.store.remote.close()


def build_services(config: AppConfig, remote: Optional[DocumentStore] = None) -> GlyphServices:
    """Wire local storage, identity, the optional remote store and the engine.

    ``remote`` overrides the Firestore client built from ``config`` (tests,
    offline demos).
    """
    local = LocalStorage.in_dir(config.data_dir, quota_bytes=config.local_quota_bytes)

    if remote is None and config.remote.is_configured:
        remote = FirestoreClient.from_config(config.remote)
        logger.info("Firestore configured for project %s; cross-user glyph sharing is enabled", config.remote.project_id)
    elif remote is None:
        logger.warning(
            "Remote store not configured: cross-user glyph sharing is disabled and glyphs are "
            "kept in local storage only. Set GLYPHSHARE_API_KEY and GLYPHSHARE_PROJECT_ID or run "
            "'glyphshare init-config'."
        )

    rng = random.Random(config.random_seed) if config.random_seed is not None else random.Random()
    store = GlyphStore(remote=remote, local=local, rng=rng)
    return GlyphServices(
        identity_provider=IdentityProvider(local),
        store=store,
        engine=ResolutionEngine(store),
    )
