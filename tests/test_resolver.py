from __future__ import annotations

import asyncio
import random

import pytest

from glyphshare.errors import TransportUnavailable
from glyphshare.local_storage import LocalStorage
from glyphshare.models import Provenance, ResolvedGlyph
from glyphshare.remote.memory import InMemoryDocumentStore
from glyphshare.resolver import DEFAULT_SENTENCE, ResolutionEngine, required_characters
from glyphshare.store import GlyphStore

IMG_A = "data:image/png;base64,AAAA"
IMG_A2 = "data:image/png;base64,AAA2"
IMG_B = "data:image/png;base64,BBBB"


@pytest.fixture()
def engine(store: GlyphStore) -> ResolutionEngine:
    return ResolutionEngine(store)


@pytest.mark.asyncio
async def test_scenario_stranger_sees_shared_glyph(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U1", "A", IMG_A)

    result = await engine.resolve("U2", ["A", "b"])

    assert result == {"A": ResolvedGlyph(image=IMG_A, provenance=Provenance.GLOBAL)}


@pytest.mark.asyncio
async def test_own_glyph_always_wins(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U1", "a", IMG_A)
    for i in range(20):
        await store.save(f"other{i}", "a", f"data:image/png;base64,O{i}")

    for _ in range(5):
        result = await engine.resolve("U1", ["a"])
        assert result["a"].provenance is Provenance.OWN
        assert result["a"].image == IMG_A


@pytest.mark.asyncio
async def test_own_glyph_is_the_current_pointer(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U1", "a", IMG_A)
    await store.save("U1", "a", IMG_A2)

    result = await engine.resolve("U1", ["a"])
    assert result["a"] == ResolvedGlyph(image=IMG_A2, provenance=Provenance.OWN)


@pytest.mark.asyncio
async def test_global_fallback_returns_an_existing_artifact(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U2", "c", IMG_A)
    await store.save("U3", "c", IMG_A2)

    result = await engine.resolve("U1", ["c"])

    assert result["c"].provenance is Provenance.GLOBAL
    assert result["c"].image in {IMG_A, IMG_A2}


@pytest.mark.asyncio
async def test_global_choice_is_deterministic_with_seed(remote: InMemoryDocumentStore, local: LocalStorage):
    writer = GlyphStore(remote=remote, local=local)
    for i in range(6):
        await writer.save(f"u{i}", "x", f"data:image/png;base64,X{i}")

    picks = []
    for _ in range(2):
        engine = ResolutionEngine(GlyphStore(remote=remote, local=local, rng=random.Random(2024)))
        picks.append([(await engine.resolve("reader", ["x"]))["x"].image for _ in range(5)])
    assert picks[0] == picks[1]


@pytest.mark.asyncio
async def test_unknown_character_is_left_unresolved(engine: ResolutionEngine):
    assert await engine.resolve("U1", ["q"]) == {}


@pytest.mark.asyncio
async def test_mixed_sentence(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U1", "a", IMG_A)
    await store.save("U2", "b", IMG_B)
    await store.save("U2", "a", IMG_A2)

    resolved, summary = await engine.resolve_with_summary("U1", ["a", "b", "c"])

    assert resolved["a"] == ResolvedGlyph(image=IMG_A, provenance=Provenance.OWN)
    assert resolved["b"] == ResolvedGlyph(image=IMG_B, provenance=Provenance.GLOBAL)
    assert "c" not in resolved
    assert (summary.own, summary.global_, summary.fallback, summary.total) == (1, 1, 1, 3)


@pytest.mark.asyncio
async def test_malformed_entries_are_dropped(store: GlyphStore, engine: ResolutionEngine):
    await store.save("U2", "a", IMG_A)

    result = await engine.resolve("U1", ["a", "", None, 3, "a"])

    assert set(result) == {"a"}


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", [None, 42, "abc", {"a": 1}])
async def test_non_sequence_input_yields_empty(engine: ResolutionEngine, bad):
    assert await engine.resolve("U1", bad) == {}


@pytest.mark.asyncio
async def test_local_only_mode_resolves_own_and_nothing_else(local: LocalStorage):
    store = GlyphStore(remote=None, local=local)
    engine = ResolutionEngine(store)
    await store.save("U1", "a", IMG_A)

    result = await engine.resolve("U1", ["a", "b"])
    assert result == {"a": ResolvedGlyph(image=IMG_A, provenance=Provenance.OWN)}
    assert await engine.resolve("U2", ["a"]) == {}


class OneBadCharacterStore(InMemoryDocumentStore):
    async def query_equal(self, collection, field, value):
        if value == "b":
            raise TransportUnavailable("lost connection")
        return await super().query_equal(collection, field, value)


@pytest.mark.asyncio
async def test_failing_lookup_does_not_abort_others(local: LocalStorage):
    remote = OneBadCharacterStore()
    store = GlyphStore(remote=remote, local=local)
    await store.save("U2", "a", IMG_A)
    await store.save("U2", "b", IMG_B)
    await store.save("U2", "c", IMG_A2)

    result = await ResolutionEngine(store).resolve("U1", ["a", "b", "c"])

    assert set(result) == {"a", "c"}


class BrokenMapStore(InMemoryDocumentStore):
    async def get_document(self, collection, doc_id):
        raise TransportUnavailable("cannot read user map")


@pytest.mark.asyncio
async def test_own_map_failure_falls_back_to_pool(local: LocalStorage):
    remote = BrokenMapStore()
    store = GlyphStore(remote=remote, local=local)
    await store.save("U1", "a", IMG_A)

    result = await ResolutionEngine(store).resolve("U1", ["a"])
    assert result["a"].provenance is Provenance.GLOBAL


class GatedStore(InMemoryDocumentStore):
    """Each query waits until every expected query has started."""

    def __init__(self, expected: int) -> None:
        super().__init__()
        self.expected = expected
        self.started = 0
        self.all_started = asyncio.Event()

    async def query_equal(self, collection, field, value):
        self.started += 1
        if self.started >= self.expected:
            self.all_started.set()
        await self.all_started.wait()
        return await super().query_equal(collection, field, value)


@pytest.mark.asyncio
async def test_global_lookups_run_concurrently(local: LocalStorage):
    remote = GatedStore(expected=3)
    store = GlyphStore(remote=remote, local=local)

    # Sequential lookups would wait on the gate forever
    result = await asyncio.wait_for(ResolutionEngine(store).resolve("U1", ["x", "y", "z"]), timeout=2)

    assert result == {}
    assert remote.started == 3


def test_required_characters_from_sentence():
    chars = required_characters(DEFAULT_SENTENCE)

    assert chars[:4] == ["A", "u", "j", "o"]
    assert "ê" in chars
    assert "'" not in chars and " " not in chars and "," not in chars and "." not in chars
    assert len(chars) == len(set(chars))


def test_required_characters_preserves_case():
    assert required_characters("aAa b") == ["a", "A", "b"]
