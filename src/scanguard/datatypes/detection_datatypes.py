"""
Detection data structures.

These are the values passed between the hash pre-filter, the classifier
adapter, the decision policy and the scan scheduler. All results are frozen:
each scan produces exactly one DetectionResult and nothing downstream edits it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

# ``DetectionResult.method`` is either one of these or a provider name
HASH_MATCH_METHOD = "hash_match"
NO_METHOD = "none"


class Severity(Enum):
    """Severity attached to a blocklisted hash."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class KnownHash:
    """A blocklisted perceptual hash. Deactivated rather than deleted."""

    id: int
    hash: str
    severity: Severity = Severity.HIGH
    source: str = ""
    active: bool = True


@dataclass(frozen=True, slots=True)
class HashMatchResult:
    """Outcome of comparing one image's perceptual hash against the blocklist."""

    matched: bool
    hash: str
    matched_hash: str | None = None
    similarity: float | None = None
    severity: Severity | None = None
    processing_time_ms: int = 0


@dataclass(frozen=True, slots=True)
class APIDetectionResult:
    """Normalized response of a single classifier provider call.

    ``error`` is set whenever the provider could not produce a verdict; in that
    case ``detected`` is False and ``confidence`` is 0.
    """

    detected: bool
    confidence: float
    provider: str
    labels: List[str] = field(default_factory=list)
    processing_time_ms: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Final verdict for one scanned image.

    ``flagged`` and ``requires_review`` are never both True.
    """

    flagged: bool
    requires_review: bool
    confidence: float
    method: str
    perceptual_hash: str
    processing_time_ms: int
    hash_match: HashMatchResult | None = None
    api_detection: APIDetectionResult | None = None

    def __post_init__(self) -> None:
        if self.flagged and self.requires_review:
            raise ValueError("A detection cannot be both flagged and pending review")

    @property
    def is_hash_match(self) -> bool:
        return self.method == HASH_MATCH_METHOD
