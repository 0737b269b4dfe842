"""
describer.py — Vision-to-text description of the marked drop point.

One async Gemini call per run, no retry. The orchestrator treats any failure
here as non-fatal and falls back to a generic placement phrase. Cancelling
the awaiting task aborts the underlying HTTP request.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types

from .config import DESCRIPTION_MODEL
from .errors import DescriptionError
from .images import EncodedImage

logger = logging.getLogger(__name__)


class DescriptionService(Protocol):
    async def describe(self, image: EncodedImage, prompt: str) -> str: ...


class GeminiDescriber:
    """Asks a Gemini vision model what sits under the red marker."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DESCRIPTION_MODEL,
        client: Optional[genai.Client] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise RuntimeError("GEMINI_API_KEY not set, cannot create Gemini client")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model

    async def describe(self, image: EncodedImage, prompt: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_text(text=prompt),
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            ],
        )
        text = (response.text or "").strip()
        if not text:
            raise DescriptionError("Description model returned no text", stage="describing")
        logger.debug("Location description (%s): %s", self.model, text)
        return text
