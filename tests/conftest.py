import random
import sys
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from glyphshare.local_storage import LocalStorage  # noqa: E402
from glyphshare.remote.memory import InMemoryDocumentStore  # noqa: E402
from glyphshare.store import GlyphStore  # noqa: E402


@pytest.fixture()
def local(tmp_path: Path) -> LocalStorage:
    return LocalStorage.in_dir(tmp_path / "device")


@pytest.fixture()
def remote() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture()
def store(remote: InMemoryDocumentStore, local: LocalStorage, rng: random.Random) -> GlyphStore:
    return GlyphStore(remote=remote, local=local, rng=rng)


@pytest.fixture()
def local_store(local: LocalStorage, rng: random.Random) -> GlyphStore:
    return GlyphStore(remote=None, local=local, rng=rng)
