"""
Content-moderation classifiers.

`HttpModerationClassifier` sends the video to an explicit-content detection
service and scores the per-frame likelihoods it returns.
`RandomModerationClassifier` stands in when no service is configured.
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import ExternalServiceError

log = structlog.get_logger()

EXPLICIT_LIKELIHOODS = frozenset({"LIKELY", "VERY_LIKELY"})
MAX_LABELS = 5


@dataclass(frozen=True)
class ClassifierVerdict:
    is_safe: bool
    confidence: int
    labels: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class ModerationClassifier(Protocol):
    async def analyze(self, file_path: str) -> ClassifierVerdict:
        ...


def score_frames(frames: Sequence[dict[str, Any]], threshold: float) -> ClassifierVerdict:
    """Score explicit-content frame annotations.

    A frame counts as explicit when rated LIKELY or VERY_LIKELY. The video is
    safe when the explicit ratio is below `threshold`.
    """
    if not frames:
        return ClassifierVerdict(is_safe=True, confidence=100, labels=[])

    explicit = [f for f in frames if str(f.get("likelihood", "")).upper() in EXPLICIT_LIKELIHOODS]
    ratio = len(explicit) / len(frames)
    labels = [
        f"{str(f['likelihood']).upper()} at {round(float(f.get('offset_seconds') or 0))}s"
        for f in explicit[:MAX_LABELS]
    ]
    return ClassifierVerdict(
        is_safe=ratio < threshold,
        confidence=round((1 - ratio) * 100),
        labels=labels,
    )


class HttpModerationClassifier:
    """Client for an explicit-content detection service.

    The service receives the file as multipart `file` and answers with
    `{"frames": [{"likelihood": "...", "offset_seconds": 1.5}, ...],
    "duration_seconds": 12.0}`.
    """

    def __init__(
        self,
        service_url: str,
        threshold: float = 0.2,
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.service_url = service_url
        self.threshold = threshold
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def analyze(self, file_path: str) -> ClassifierVerdict:
        # httpx streams the open handle in chunks instead of buffering the upload
        with open(file_path, "rb") as f:
            files = {"file": (os.path.basename(file_path), f, "application/octet-stream")}
            try:
                response = await self._post(files)
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as e:
                raise ExternalServiceError(
                    f"Moderation service returned {e.response.status_code}"
                )
            except (httpx.HTTPError, ValueError) as e:
                raise ExternalServiceError(f"Moderation service unavailable: {e}")

        verdict = score_frames(body.get("frames") or [], self.threshold)
        return ClassifierVerdict(
            is_safe=verdict.is_safe,
            confidence=verdict.confidence,
            labels=verdict.labels,
            duration_seconds=float(body.get("duration_seconds") or 0),
        )

    async def _post(self, files: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.service_url, files=files)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(self.service_url, files=files)


class RandomModerationClassifier:
    """Development stand-in: 80% safe, confidence between 80 and 100."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    async def analyze(self, file_path: str) -> ClassifierVerdict:
        is_safe = self._rng.random() > 0.2
        return ClassifierVerdict(
            is_safe=is_safe,
            confidence=round(self._rng.random() * 20 + 80),
            labels=["No explicit content detected"] if is_safe else ["Potentially explicit content"],
        )


def build_classifier(settings: Settings) -> ModerationClassifier:
    if settings.moderation_service_url:
        return HttpModerationClassifier(
            settings.moderation_service_url,
            threshold=settings.moderation_explicit_threshold,
            timeout_seconds=settings.moderation_timeout_seconds,
        )
    log.warning("moderation.random_classifier", reason="no moderation service configured")
    return RandomModerationClassifier()
