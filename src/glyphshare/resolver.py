from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Dict, List, Optional, Tuple

from .models import Provenance, ResolutionSummary, ResolvedGlyph, is_valid_character
from .store import GlyphStore

logger = logging.getLogger(__name__)

DEFAULT_SENTENCE = "Aujourd'hui, maman est morte. Ou peut-être hier."


def required_characters(sentence: str) -> List[str]:
    """Unique letters of ``sentence`` in first-seen order, case preserved."""
    seen: Dict[str, None] = {}
    for ch in sentence:
        if ch.isalpha():
            seen.setdefault(ch, None)
    return list(seen)


def _working_set(required: Any) -> List[str]:
    if isinstance(required, str) or not isinstance(required, Sequence):
        logger.error("Invalid required characters: expected a sequence, got %s", type(required).__name__)
        return []
    valid = [c for c in required if is_valid_character(c)]
    dropped = len(required) - len(valid)
    if dropped:
        logger.warning("Filtered out %d invalid characters", dropped)
    return list(dict.fromkeys(valid))


class ResolutionEngine:
    """Fill a set of required characters with the best available glyphs.

    Priority:
    1. The caller's own glyph (final, never overridden)
    2. A random glyph from the shared pool
    3. Nothing: the renderer draws the default typeface
    """

    def __init__(self, store: GlyphStore) -> None:
        self.store = store

    async def resolve(self, identity: str, required: Sequence[str]) -> Dict[str, ResolvedGlyph]:
        resolved, _ = await self.resolve_with_summary(identity, required)
        return resolved

    async def resolve_with_summary(
        self, identity: str, required: Sequence[str]
    ) -> Tuple[Dict[str, ResolvedGlyph], ResolutionSummary]:
        characters = _working_set(required)
        resolved: Dict[str, ResolvedGlyph] = {}
        if not characters:
            return resolved, ResolutionSummary()

        own = await self._load_own(identity)
        for c in characters:
            if c in own:
                resolved[c] = ResolvedGlyph(image=own[c], provenance=Provenance.OWN)

        missing = [c for c in characters if c not in resolved]
        if missing:
            logger.debug("Checking shared pool for %d missing characters", len(missing))
            results = await asyncio.gather(
                *(self.store.query_random_global_artifact(c) for c in missing),
                return_exceptions=True,
            )
            for c, result in zip(missing, results):
                if isinstance(result, BaseException):
                    # One failing lookup must not cost the other characters their glyphs
                    logger.error("Error querying shared pool for %r: %s", c, result)
                    continue
                if result:
                    resolved[c] = ResolvedGlyph(image=result, provenance=Provenance.GLOBAL)

        summary = ResolutionSummary.from_resolution(characters, resolved)
        logger.info(
            "Resolved %d characters: %d own, %d global, %d typeface fallback",
            summary.total,
            summary.own,
            summary.global_,
            summary.fallback,
        )
        return resolved, summary

    async def _load_own(self, identity: Optional[str]) -> Dict[str, str]:
        if not identity:
            return {}
        try:
            return await self.store.load_own_artifacts(identity)
        except Exception as e:
            logger.error("Error loading own glyphs for %s: %s", identity, e)
            return {}
