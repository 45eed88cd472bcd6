from __future__ import annotations

import re
from pathlib import Path

from glyphshare.errors import LocalStorageError
from glyphshare.identity import IDENTITY_KEY, IdentityProvider, looks_like_identity, mint_identity
from glyphshare.local_storage import LocalStorage

IDENTITY_RE = re.compile(r"^user_\d+_[0-9a-z]{9}$")


class UnavailableStorage(LocalStorage):
    def get_item(self, key):
        raise LocalStorageError("disabled")

    def set_item(self, key, value):
        raise LocalStorageError("disabled")


def test_mint_identity_shape():
    identity = mint_identity(clock=lambda: 1700000000.123)
    assert IDENTITY_RE.match(identity)
    assert identity.startswith("user_1700000000123_")
    assert looks_like_identity(identity)


def test_identity_is_created_once_and_reused(local: LocalStorage):
    provider = IdentityProvider(local)

    first = provider.get_or_create_identity()
    second = provider.get_or_create_identity()

    assert first == second
    assert IDENTITY_RE.match(first)
    assert local.get_item(IDENTITY_KEY) == first


def test_identity_survives_new_provider(tmp_path: Path):
    a = IdentityProvider(LocalStorage.in_dir(tmp_path)).get_or_create_identity()
    b = IdentityProvider(LocalStorage.in_dir(tmp_path)).get_or_create_identity()
    assert a == b


def test_existing_identity_is_returned_unchanged(local: LocalStorage):
    local.set_item(IDENTITY_KEY, "user_1_legacy")
    assert IdentityProvider(local).get_or_create_identity() == "user_1_legacy"


def test_unavailable_storage_mints_fresh_token_each_call(tmp_path: Path):
    provider = IdentityProvider(UnavailableStorage(tmp_path / "nope.json"))

    first = provider.get_or_create_identity()
    second = provider.get_or_create_identity()

    assert IDENTITY_RE.match(first) and IDENTITY_RE.match(second)
    assert first != second


def test_full_storage_still_returns_identity(tmp_path: Path):
    storage = LocalStorage.in_dir(tmp_path, quota_bytes=5)
    provider = IdentityProvider(storage)

    identity = provider.get_or_create_identity()

    assert IDENTITY_RE.match(identity)
    assert storage.get_item(IDENTITY_KEY) is None


def test_no_storage_at_all():
    assert looks_like_identity(IdentityProvider(None).get_or_create_identity())


def test_looks_like_identity_rejects_other_shapes():
    assert not looks_like_identity("fallback_123")
    assert not looks_like_identity("user_abc_def")
    assert not looks_like_identity(None)


def test_undecodable_storage_file_still_yields_identity(tmp_path: Path):
    (tmp_path / "local_storage.json").write_bytes(b"\xff\xfe{not utf8")
    provider = IdentityProvider(LocalStorage.in_dir(tmp_path))

    identity = provider.get_or_create_identity()

    assert IDENTITY_RE.match(identity)
    assert provider.get_or_create_identity() == identity
