"""
Perceptual-hash pre-filter.

Images are hashed with imagehash and compared against the active blocklist
before any classifier call. A match short-circuits the rest of the chain.
"""

from __future__ import annotations

import asyncio
import time
from io import BytesIO

import imagehash
from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from scanguard.datatypes.detection_datatypes import HashMatchResult
from scanguard.detection.errors import HashComputationError
from scanguard.detection.hash_store import HashStore, hash_similarity
from scanguard.util.logger import get_logger

logger = get_logger("hash_prefilter")

register_heif_opener()

# Larger images are refused before decoding
MAX_HASH_PIXELS = 40_000_000


def compute_perceptual_hash(image_bytes: bytes, hash_size: int = 16) -> str:
    """
    Hash raw image bytes into a hex string of ``hash_size * hash_size`` bits.

    Blocking; call through ``asyncio.to_thread``.

    Raises:
        HashComputationError: if the bytes cannot be decoded as an image or the
            image has more than ``MAX_HASH_PIXELS`` pixels.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            width, height = img.size
            if width * height > MAX_HASH_PIXELS:
                raise HashComputationError(
                    f"Image is {width}x{height} pixels, limit is {MAX_HASH_PIXELS} pixels"
                )
            img.load()
            return str(imagehash.dhash(img.convert("RGB"), hash_size=hash_size))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise HashComputationError(f"Could not decode image for hashing: {exc}") from exc


class HashPrefilter:
    """Compares an image's perceptual hash against the HashStore."""

    def __init__(self, store: HashStore, match_threshold: float = 0.95, hash_size: int = 16) -> None:
        self.store = store
        self.match_threshold = match_threshold
        self.hash_size = hash_size

    async def prefilter(self, image_bytes: bytes) -> HashMatchResult:
        """
        Hash the image and return the first active blocklist entry whose
        similarity reaches the match threshold.
        """
        started = time.monotonic()
        image_hash = await asyncio.to_thread(compute_perceptual_hash, image_bytes, self.hash_size)

        for known in await self.store.active_hashes():
            similarity = hash_similarity(image_hash, known.hash)
            if similarity >= self.match_threshold:
                elapsed_ms = int((time.monotonic() - started) * 1000)
                logger.info(
                    "[HASH PREFILTER] Match against entry %s (similarity=%.3f, severity=%s)",
                    known.id,
                    similarity,
                    known.severity,
                )
                return HashMatchResult(
                    matched=True,
                    hash=image_hash,
                    matched_hash=known.hash,
                    similarity=similarity,
                    severity=known.severity,
                    processing_time_ms=elapsed_ms,
                )

        return HashMatchResult(
            matched=False,
            hash=image_hash,
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )
