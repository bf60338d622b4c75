"""
Maps a classifier confidence onto a verdict.

    confidence >= detection_threshold                       -> FLAGGED
    review_threshold <= confidence < detection_threshold    -> REVIEW
    confidence < review_threshold                           -> PASS

``review_threshold < detection_threshold`` is checked when configuration is
loaded, not here.
"""

from enum import Enum


class Verdict(Enum):
    PASS = "pass"
    REVIEW = "review"
    FLAGGED = "flagged"

    @property
    def flagged(self) -> bool:
        return self is Verdict.FLAGGED

    @property
    def requires_review(self) -> bool:
        return self is Verdict.REVIEW


def decide(confidence: float, detection_threshold: float, review_threshold: float) -> Verdict:
    if confidence >= detection_threshold:
        return Verdict.FLAGGED
    if confidence >= review_threshold:
        return Verdict.REVIEW
    return Verdict.PASS
