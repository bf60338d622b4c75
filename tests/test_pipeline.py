from unittest.mock import AsyncMock, MagicMock

import pytest

from scanguard.configuration.detection_settings import DetectionSettings
from scanguard.datatypes.detection_datatypes import HASH_MATCH_METHOD, APIDetectionResult
from scanguard.datatypes.image_datatypes import ImageRef, ImageURL, ScanRequest
from scanguard.detection.classifier import ClassifierAdapter
from scanguard.detection.errors import HashComputationError
from scanguard.detection.hash_prefilter import HashPrefilter, compute_perceptual_hash
from scanguard.detection.hash_store import HashStore
from scanguard.detection.pipeline import DetectionPipeline


def _classifier(confidence=0.0, error=None, provider="worker"):
    classifier = MagicMock(spec=ClassifierAdapter)
    classifier.classify = AsyncMock(
        return_value=APIDetectionResult(
            detected=confidence >= 0.85 and error is None,
            confidence=confidence,
            provider=provider,
            error=error,
        )
    )
    return classifier


def _request(data):
    return ScanRequest(image_ref=ImageRef(url=ImageURL("https://cdn.example.com/x.png"), data=data))


@pytest.mark.asyncio
async def test_hash_match_skips_classifier(db, png_factory):
    store = HashStore(db)
    image = png_factory("gradient")
    await store.add_known_hash(compute_perceptual_hash(image), source="test")
    classifier = _classifier(0.1)
    pipeline = DetectionPipeline(HashPrefilter(store), classifier, DetectionSettings())

    result = await pipeline.scan(_request(image))

    assert result.flagged is True
    assert result.requires_review is False
    assert result.confidence == 1.0
    assert result.method == HASH_MATCH_METHOD
    assert result.is_hash_match
    classifier.classify.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "confidence, flagged, review",
    [(0.95, True, False), (0.75, False, True), (0.2, False, False)],
)
async def test_classifier_confidence_drives_verdict(db, png_factory, confidence, flagged, review):
    pipeline = DetectionPipeline(HashPrefilter(HashStore(db)), _classifier(confidence), DetectionSettings())

    result = await pipeline.scan(_request(png_factory("checker")))

    assert result.flagged is flagged
    assert result.requires_review is review
    assert result.method == "worker"
    assert len(result.perceptual_hash) == 64
    assert result.hash_match is not None and not result.hash_match.matched


@pytest.mark.asyncio
async def test_provider_failure_passes_image(db, png_factory):
    classifier = _classifier(0.0, error="timed out after 10s")
    pipeline = DetectionPipeline(HashPrefilter(HashStore(db)), classifier, DetectionSettings())

    result = await pipeline.scan(_request(png_factory("circle")))

    assert result.flagged is False
    assert result.requires_review is False
    assert result.api_detection.error == "timed out after 10s"


@pytest.mark.asyncio
async def test_undecodable_image_propagates(db):
    classifier = _classifier(0.99)
    pipeline = DetectionPipeline(HashPrefilter(HashStore(db)), classifier, DetectionSettings())

    with pytest.raises(HashComputationError):
        await pipeline.scan(_request(b"garbage"))
    classifier.classify.assert_not_awaited()


@pytest.mark.asyncio
async def test_url_only_request_skips_hashing(db):
    classifier = _classifier(0.9)
    pipeline = DetectionPipeline(HashPrefilter(HashStore(db)), classifier, DetectionSettings())

    result = await pipeline.scan(ScanRequest(image_ref=ImageRef(url=ImageURL("https://cdn.example.com/x.png"))))

    assert result.flagged is True
    assert result.perceptual_hash == ""
    assert result.hash_match is None
