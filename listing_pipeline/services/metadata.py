"""Listing text generation from product photos."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from listing_media import TransformError, WebOptimizeOptions, optimize_for_web

from listing_pipeline.core.exceptions import CollaboratorError
from listing_pipeline.services.http import read_json, send_request
from listing_pipeline.services.publishers import MAX_TAGS, clean_tags, clean_title

logger = logging.getLogger(__name__)

GEMINI_SERVICE = "gemini"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
MIN_TAGS = 5
DEFAULT_CONFIDENCE = 0.85
SAMPLE_OPTIONS = WebOptimizeOptions(max_width=1024, max_height=1024, quality=80, format="jpeg")

PROMPT = """Analyze these product images and write an Etsy listing for the product.
Return a JSON object with exactly these keys:
- "title": compelling, SEO-friendly title, at most 140 characters
- "tags": between 5 and 13 search tags, each 1-3 words and at most 20 characters
- "description": 200-500 word description covering key features, materials,
  use cases and a closing call to action
Return only the JSON object."""


@dataclass
class ListingMetadata:
    title: str
    tags: List[str]
    description: str
    confidence: float = DEFAULT_CONFIDENCE
    generated_at: Optional[datetime] = None
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "tags": list(self.tags),
            "description": self.description,
            "confidence": self.confidence,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "fallback": self.fallback,
        }

    @classmethod
    def fallback_metadata(cls) -> "ListingMetadata":
        """Placeholder text used when generation fails, so a listing can still be drafted."""
        return cls(
            title="Handmade Product - Please Edit Title",
            tags=["handmade", "unique", "gift", "custom", "artisan"],
            description="Beautiful handmade product. Please add your own description.",
            confidence=0.0,
            fallback=True,
        )


class MetadataGenerator(Protocol):
    async def generate(self, images: Sequence[bytes]) -> ListingMetadata:
        ...


class GeminiMetadataGenerator:
    """Asks a Gemini model for title, tags and description in a single request.

    At most ``sample_size`` images are sent, each shrunk to fit 1024px first.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        model: str = "gemini-1.5-flash",
        sample_size: int = 2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self.model = model
        self.sample_size = sample_size
        self._rng = rng or random.Random()

    async def generate(self, images: Sequence[bytes]) -> ListingMetadata:
        if not self._api_key:
            raise CollaboratorError(GEMINI_SERVICE, "GOOGLE_AI_API_KEY is not configured")
        if not images:
            raise CollaboratorError(GEMINI_SERVICE, "at least one image is required for metadata generation")

        parts: List[Dict[str, Any]] = [{"text": PROMPT}]
        for sample in self.select_images(images):
            try:
                encoded = await asyncio.to_thread(optimize_for_web, sample, SAMPLE_OPTIONS)
            except TransformError as exc:
                raise CollaboratorError(GEMINI_SERVICE, f"could not prepare image: {exc}") from exc
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": base64.b64encode(encoded).decode("ascii")}})

        response = await send_request(
            self._client,
            GEMINI_SERVICE,
            "POST",
            GEMINI_URL.format(model=self.model),
            params={"key": self._api_key},
            json={
                "contents": [{"parts": parts}],
                "generationConfig": {"responseMimeType": "application/json"},
            },
        )
        return parse_metadata(_candidate_text(read_json(response, GEMINI_SERVICE)))

    def select_images(self, images: Sequence[bytes]) -> List[bytes]:
        if len(images) <= self.sample_size:
            return list(images)
        return self._rng.sample(list(images), self.sample_size)


def parse_metadata(text: str) -> ListingMetadata:
    """Validate the model's JSON answer and clamp it to marketplace limits."""

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CollaboratorError(GEMINI_SERVICE, "model response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise CollaboratorError(GEMINI_SERVICE, "model response was not a JSON object")

    title = clean_title(str(data.get("title") or ""))
    description = str(data.get("description") or "").strip()
    raw_tags = data.get("tags") or []
    if isinstance(raw_tags, str):
        raw_tags = raw_tags.split(",")
    tags = clean_tags(raw_tags)[:MAX_TAGS]

    if not title:
        raise CollaboratorError(GEMINI_SERVICE, "model returned an empty title")
    if not description:
        raise CollaboratorError(GEMINI_SERVICE, "model returned an empty description")
    if len(tags) < MIN_TAGS:
        raise CollaboratorError(GEMINI_SERVICE, f"generated {len(tags)} tags, at least {MIN_TAGS} are required")

    return ListingMetadata(
        title=title,
        tags=tags,
        description=description,
        confidence=DEFAULT_CONFIDENCE,
        generated_at=datetime.now(timezone.utc),
    )


def _candidate_text(body: Any) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)
    except (KeyError, IndexError, TypeError) as exc:
        raise CollaboratorError(GEMINI_SERVICE, "response contained no candidates") from exc
