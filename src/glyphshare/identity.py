from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Callable, Optional

from .errors import LocalStorageError
from .local_storage import LocalStorage

logger = logging.getLogger(__name__)

IDENTITY_KEY = "identity"
IDENTITY_PREFIX = "user_"
_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def mint_identity(clock: Callable[[], float] = time.time) -> str:
    """Return a fresh ``user_<ms timestamp>_<base36 suffix>`` token."""
    millis = int(clock() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{IDENTITY_PREFIX}{millis}_{suffix}"


def looks_like_identity(value: object) -> bool:
    if not isinstance(value, str) or not value.startswith(IDENTITY_PREFIX):
        return False
    parts = value[len(IDENTITY_PREFIX):].split("_")
    return len(parts) == 2 and parts[0].isdigit() and bool(parts[1])


class IdentityProvider:
    """Per-device pseudonymous identity persisted in local storage.

    The token is self-asserted and unauthenticated: anyone who learns it can
    act as this identity. It only provides continuity across sessions.
    """

    def __init__(self, storage: Optional[LocalStorage], clock: Callable[[], float] = time.time) -> None:
        self.storage = storage
        self._clock = clock

    def get_or_create_identity(self) -> str:
        if self.storage is None:
            logger.warning("No local storage; identity will not persist across sessions")
            return mint_identity(self._clock)

        try:
            existing = self.storage.get_item(IDENTITY_KEY)
        except LocalStorageError:
            logger.warning("Failed to read identity from local storage; minting a temporary one", exc_info=True)
            return mint_identity(self._clock)
        if existing:
            return existing

        identity = mint_identity(self._clock)
        try:
            self.storage.set_item(IDENTITY_KEY, identity)
        except LocalStorageError:
            logger.warning("Failed to persist identity; it will change next session", exc_info=True)
        else:
            logger.info("Created new identity %s", identity)
        return identity
