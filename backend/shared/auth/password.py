"""Password hashing.

bcrypt costs ~100ms per call, so BcryptHasher runs it on a worker thread via
anyio to keep the broker's event loop responsive. SimpleHasher is an instant
SHA-256 stand-in for tests, selected with AUTH_PASSWORD_HASHER=simple.
"""

from __future__ import annotations

import hashlib
from typing import Protocol, runtime_checkable

import bcrypt
from anyio import to_thread

# bcrypt ignores everything past 72 bytes.
BCRYPT_MAX_BYTES = 72

_SIMPLE_PREFIX = "simple$"


@runtime_checkable
class PasswordHasher(Protocol):
    async def hash(self, plain: str) -> str: ...

    async def verify(self, plain: str, hashed: str) -> bool: ...


class BcryptHasher:
    def __init__(self, rounds: int = 10) -> None:
        self._rounds = rounds

    async def hash(self, plain: str) -> str:
        encoded = plain.encode("utf-8")
        salt = bcrypt.gensalt(rounds=self._rounds)
        return await to_thread.run_sync(lambda: bcrypt.hashpw(encoded, salt).decode("utf-8"))

    async def verify(self, plain: str, hashed: str) -> bool:
        """Return False for malformed or foreign hashes instead of raising."""
        encoded_plain = plain.encode("utf-8")
        encoded_hash = hashed.encode("utf-8")
        try:
            return await to_thread.run_sync(lambda: bcrypt.checkpw(encoded_plain, encoded_hash))
        except ValueError:
            return False


class SimpleHasher:
    """Unsalted SHA-256. Tests only."""

    @staticmethod
    def _digest(plain: str) -> str:
        return _SIMPLE_PREFIX + hashlib.sha256(plain.encode("utf-8")).hexdigest()

    async def hash(self, plain: str) -> str:
        return self._digest(plain)

    async def verify(self, plain: str, hashed: str) -> bool:
        return hashed.startswith(_SIMPLE_PREFIX) and hashed == self._digest(plain)


def get_hasher(name: str = "bcrypt") -> PasswordHasher:
    if name == "bcrypt":
        return BcryptHasher()
    if name == "simple":
        return SimpleHasher()
    raise ValueError(f"Unknown password hasher: {name!r}")
