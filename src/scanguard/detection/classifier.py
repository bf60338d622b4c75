"""
Classifier adapter over the external image-classification providers.

Three providers are supported, tried in a fixed priority order:

- ``worker``: self-hosted classifier endpoint, POST ``{"imageUrl": ...}``
  with an ``X-API-Key`` header.
- ``cloudflare``: Workers AI image classification, POST of the raw bytes.
- ``sightengine``: GET with the image URL and API credentials.

The first provider that is configured and can handle the image reference is
used; a single provider answers each call. Every failure is absorbed into a
not-detected result (fail-open), so ``ClassifierAdapter.classify`` never
raises.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Sequence

import requests
from jsonschema import ValidationError, validate

from scanguard.configuration.detection_settings import DetectionSettings
from scanguard.datatypes.detection_datatypes import NO_METHOD, APIDetectionResult
from scanguard.datatypes.image_datatypes import ImageRef
from scanguard.detection.errors import ProviderFailure
from scanguard.util.logger import get_logger

logger = get_logger("classifier")

CLOUDFLARE_MODEL_URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/@cf/microsoft/resnet-50"
SIGHTENGINE_URL = "https://api.sightengine.com/1.0/check.json"
SIGHTENGINE_MODELS = "nudity-2.1,offensive"
NO_PROVIDER_ERROR = "No classification provider configured"

WORKER_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "detected": {"type": "boolean"},
        "confidence": {"type": "number"},
        "provider": {"type": "string"},
        "labels": {"type": "array", "items": {"type": "string"}},
        "processingTimeMs": {"type": "number"},
        "error": {"type": "string"},
    },
    "required": ["detected", "confidence"],
}

CLOUDFLARE_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "result": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "label": {"type": "string"},
                    "score": {"type": "number"},
                },
                "required": ["label", "score"],
            },
        },
    },
    "required": ["result"],
}

SIGHTENGINE_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {"type": "string"},
        "nudity": {"type": "object"},
        "offensive": {"type": "object"},
    },
    "required": ["status"],
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ClassifierProvider:
    """
    One external classifier.

    Subclasses implement ``is_configured``, ``can_handle`` and ``_request``;
    ``_request`` runs in a worker thread and returns ``(confidence, labels)``
    or raises ProviderFailure.
    """

    name: str = ""
    response_schema: Dict[str, Any] = {}

    def __init__(self, settings: DetectionSettings) -> None:
        self.settings = settings

    def is_configured(self) -> bool:
        raise NotImplementedError

    def can_handle(self, image_ref: ImageRef) -> bool:
        raise NotImplementedError

    def _request(self, image_ref: ImageRef) -> tuple[float, List[str]]:
        raise NotImplementedError

    def _parse_json(self, response: requests.Response) -> Dict[str, Any]:
        """Check status, decode and schema-validate a provider response."""
        if not 200 <= response.status_code < 300:
            raise ProviderFailure(self.name, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderFailure(self.name, f"invalid JSON: {exc}") from exc
        try:
            validate(instance=payload, schema=self.response_schema)
        except ValidationError as exc:
            raise ProviderFailure(self.name, f"unexpected response shape: {exc.message}") from exc
        return payload

    async def classify(self, image_ref: ImageRef, timeout: float) -> tuple[float, List[str]]:
        """Run the blocking request in a thread with a hard deadline."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._request, image_ref), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderFailure(self.name, f"timed out after {timeout:g}s") from exc
        except requests.RequestException as exc:
            raise ProviderFailure(self.name, str(exc)) from exc
        except (TypeError, ValueError) as exc:
            raise ProviderFailure(self.name, f"malformed response: {exc}") from exc


class WorkerProvider(ClassifierProvider):
    name = "worker"
    response_schema = WORKER_RESPONSE_SCHEMA

    def is_configured(self) -> bool:
        return bool(self.settings.worker_url and self.settings.worker_api_key)

    def can_handle(self, image_ref: ImageRef) -> bool:
        return image_ref.url is not None

    def _request(self, image_ref: ImageRef) -> tuple[float, List[str]]:
        response = requests.post(
            self.settings.worker_url,
            json={"imageUrl": str(image_ref.url)},
            headers={"X-API-Key": self.settings.worker_api_key},
            timeout=self.settings.provider_timeout_seconds,
        )
        payload = self._parse_json(response)
        if payload.get("error"):
            raise ProviderFailure(self.name, payload["error"])
        return _clamp(payload["confidence"]), list(payload.get("labels", []))


class CloudflareProvider(ClassifierProvider):
    name = "cloudflare"
    response_schema = CLOUDFLARE_RESPONSE_SCHEMA

    def is_configured(self) -> bool:
        return bool(self.settings.cloudflare_account_id and self.settings.cloudflare_api_token)

    def can_handle(self, image_ref: ImageRef) -> bool:
        return image_ref.data is not None

    def _request(self, image_ref: ImageRef) -> tuple[float, List[str]]:
        response = requests.post(
            CLOUDFLARE_MODEL_URL.format(account_id=self.settings.cloudflare_account_id),
            data=image_ref.data,
            headers={
                "Authorization": f"Bearer {self.settings.cloudflare_api_token}",
                "Content-Type": "application/octet-stream",
            },
            timeout=self.settings.provider_timeout_seconds,
        )
        results = self._parse_json(response)["result"]
        labels = [entry["label"] for entry in results]
        # Score of the first label mentioning nsfw; the model ranks labels by score
        score = next((entry["score"] for entry in results if "nsfw" in entry["label"].lower()), 0.0)
        return _clamp(score), labels


class SightengineProvider(ClassifierProvider):
    name = "sightengine"
    response_schema = SIGHTENGINE_RESPONSE_SCHEMA

    def is_configured(self) -> bool:
        return bool(self.settings.sightengine_api_user and self.settings.sightengine_api_secret)

    def can_handle(self, image_ref: ImageRef) -> bool:
        return image_ref.url is not None

    def _request(self, image_ref: ImageRef) -> tuple[float, List[str]]:
        response = requests.get(
            SIGHTENGINE_URL,
            params={
                "url": str(image_ref.url),
                "models": SIGHTENGINE_MODELS,
                "api_user": self.settings.sightengine_api_user,
                "api_secret": self.settings.sightengine_api_secret,
            },
            timeout=self.settings.provider_timeout_seconds,
        )
        payload = self._parse_json(response)
        if payload["status"] != "success":
            error = payload.get("error", {})
            message = error.get("message", payload["status"]) if isinstance(error, dict) else str(error)
            raise ProviderFailure(self.name, message)

        nudity = payload.get("nudity") or {}
        offensive = payload.get("offensive") or {}
        nudity_score = nudity.get("sexual_activity") or nudity.get("sexual_display") or 0.0
        offensive_score = offensive.get("prob") or 0.0
        return _clamp(max(nudity_score, offensive_score)), []


PROVIDER_TYPES: Dict[str, type[ClassifierProvider]] = {
    WorkerProvider.name: WorkerProvider,
    CloudflareProvider.name: CloudflareProvider,
    SightengineProvider.name: SightengineProvider,
}


def build_providers(settings: DetectionSettings) -> List[ClassifierProvider]:
    """Instantiate providers in configured priority order, skipping unknown names."""
    providers: List[ClassifierProvider] = []
    for name in settings.provider_priority:
        provider_type = PROVIDER_TYPES.get(name)
        if provider_type is None:
            logger.warning("[CLASSIFIER] Unknown provider %r in provider_priority, ignoring", name)
            continue
        providers.append(provider_type(settings))
    return providers


class ClassifierAdapter:
    """Single entry point for external classification."""

    def __init__(
        self,
        settings: DetectionSettings,
        providers: Sequence[ClassifierProvider] | None = None,
    ) -> None:
        self.settings = settings
        self.providers: List[ClassifierProvider] = (
            list(providers) if providers is not None else build_providers(settings)
        )

    def select_provider(self, image_ref: ImageRef) -> ClassifierProvider | None:
        for provider in self.providers:
            if provider.is_configured() and provider.can_handle(image_ref):
                return provider
        return None

    async def classify(self, image_ref: ImageRef) -> APIDetectionResult:
        """
        Classify an image with the highest-priority usable provider.

        Never raises: failures come back as ``detected=False, confidence=0``
        with ``error`` set.
        """
        provider = self.select_provider(image_ref)
        if provider is None:
            return APIDetectionResult(
                detected=False,
                confidence=0.0,
                provider=NO_METHOD,
                error=NO_PROVIDER_ERROR,
            )

        started = time.monotonic()
        try:
            confidence, labels = await provider.classify(image_ref, self.settings.provider_timeout_seconds)
        except ProviderFailure as exc:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning("[CLASSIFIER] Provider %s failed, treating as not detected: %s", provider.name, exc.reason)
            return APIDetectionResult(
                detected=False,
                confidence=0.0,
                provider=provider.name,
                processing_time_ms=elapsed_ms,
                error=exc.reason,
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        detected = confidence >= self.settings.detection_threshold
        logger.debug(
            "[CLASSIFIER] %s returned confidence=%.3f in %dms",
            provider.name,
            confidence,
            elapsed_ms,
        )
        return APIDetectionResult(
            detected=detected,
            confidence=confidence,
            provider=provider.name,
            labels=labels,
            processing_time_ms=elapsed_ms,
        )
