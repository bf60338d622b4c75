"""
Persistent blocklist of perceptual hashes.

HashStore wraps the hash_database table behind an async interface. It is
read-mostly: the pre-filter only ever calls ``active_hashes``; adding and
removing entries is a moderator action.
"""

from __future__ import annotations

from typing import List

from scanguard.database.database import Database
from scanguard.datatypes.detection_datatypes import KnownHash, Severity
from scanguard.repositories.hash_repo import HashRepo
from scanguard.util.logger import get_logger

logger = get_logger("hash_store")

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def hash_similarity(hash_a: str, hash_b: str) -> float:
    """
    Normalized Hamming similarity between two hex-encoded bit strings.

    Returns a value in [0, 1]. Hashes of different length, empty hashes and
    anything that is not valid hex score 0.
    """
    if not hash_a or not hash_b or len(hash_a) != len(hash_b):
        return 0.0
    if not (set(hash_a) <= _HEX_DIGITS and set(hash_b) <= _HEX_DIGITS):
        return 0.0

    total_bits = len(hash_a) * 4
    differing = bin(int(hash_a, 16) ^ int(hash_b, 16)).count("1")
    return (total_bits - differing) / total_bits


class HashStore:
    """Async access to the perceptual-hash blocklist."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def active_hashes(self) -> List[KnownHash]:
        """Active entries in insertion order."""
        async with self.db.read() as conn:
            return await HashRepo.list_active(conn)

    async def add_known_hash(
        self,
        hash_hex: str,
        source: str,
        severity: Severity = Severity.HIGH,
    ) -> int:
        """Blocklist a hash. Returns the new entry's id."""
        normalized = hash_hex.strip().lower()
        if not normalized or not set(normalized) <= _HEX_DIGITS:
            raise ValueError(f"Not a hex-encoded hash: {hash_hex!r}")

        async with self.db.transaction() as conn:
            entry_id = await HashRepo.insert(conn, normalized, source, severity)
        logger.info("[HASH STORE] Added hash %s (severity=%s, source=%s)", normalized, severity, source)
        return entry_id

    async def deactivate_hash(self, hash_hex: str) -> bool:
        """Deactivate a blocklisted hash. Returns False when no active entry matched."""
        normalized = hash_hex.strip().lower()
        async with self.db.transaction() as conn:
            changed = await HashRepo.deactivate(conn, normalized)
        if changed:
            logger.info("[HASH STORE] Deactivated hash %s", normalized)
        return changed > 0
