"""
The detection chain for one image: hash pre-filter, then classifier, then
decision policy.
"""

from __future__ import annotations

import time

from scanguard.configuration.detection_settings import DetectionSettings
from scanguard.datatypes.detection_datatypes import HASH_MATCH_METHOD, DetectionResult
from scanguard.datatypes.image_datatypes import ScanRequest
from scanguard.detection.classifier import ClassifierAdapter
from scanguard.detection.decision_policy import decide
from scanguard.detection.hash_prefilter import HashPrefilter
from scanguard.util.logger import get_logger

logger = get_logger("detection_pipeline")


class DetectionPipeline:
    """
    Runs one ScanRequest through the chain and produces a DetectionResult.

    A blocklist match returns ``flagged=True, confidence=1.0`` without calling
    the classifier. HashComputationError propagates to the caller; classifier
    failures do not (the adapter fails open).
    """

    def __init__(
        self,
        prefilter: HashPrefilter,
        classifier: ClassifierAdapter,
        settings: DetectionSettings,
    ) -> None:
        self.prefilter = prefilter
        self.classifier = classifier
        self.settings = settings

    async def scan(self, request: ScanRequest) -> DetectionResult:
        started = time.monotonic()
        image_ref = request.image_ref

        hash_match = None
        perceptual_hash = ""
        if image_ref.data is not None:
            hash_match = await self.prefilter.prefilter(image_ref.data)
            perceptual_hash = hash_match.hash
            if hash_match.matched:
                return DetectionResult(
                    flagged=True,
                    requires_review=False,
                    confidence=1.0,
                    method=HASH_MATCH_METHOD,
                    perceptual_hash=perceptual_hash,
                    processing_time_ms=int((time.monotonic() - started) * 1000),
                    hash_match=hash_match,
                )

        api_detection = await self.classifier.classify(image_ref)
        verdict = decide(
            api_detection.confidence,
            self.settings.detection_threshold,
            self.settings.review_threshold,
        )
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "[DETECTION PIPELINE] %s: confidence=%.3f verdict=%s (%dms)",
            api_detection.provider,
            api_detection.confidence,
            verdict.value,
            elapsed_ms,
        )
        return DetectionResult(
            flagged=verdict.flagged,
            requires_review=verdict.requires_review,
            confidence=api_detection.confidence,
            method=api_detection.provider,
            perceptual_hash=perceptual_hash,
            processing_time_ms=elapsed_ms,
            hash_match=hash_match,
            api_detection=api_detection,
        )
