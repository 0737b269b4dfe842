"""
generator.py — Multimodal composition call (product + scene + prompt → image).

The response is returned as a flat list of parts, each optionally carrying
text and/or an inline image. Picking the image, and failing when there is
none, is the orchestrator's job. When the response holds no image because
it was blocked, the block reason comes back as a text part so it reaches
the user with the error.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import numpy as np
from google import genai
from google.genai import types
from PIL import Image

from .config import COMPOSITION_MODEL
from .errors import GenerationError
from .images import EncodedImage

logger = logging.getLogger(__name__)

_QUOTA_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota", "rateLimitExceeded")
QUOTA_MESSAGE = (
    "API quota exceeded. You have made too many requests or your free trial has ended. "
    "Please check your Google AI plan and billing details."
)

# Finish / block reasons that do not explain a missing image
_UNREMARKABLE_REASONS = {"STOP", "FINISH_REASON_UNSPECIFIED", "BLOCKED_REASON_UNSPECIFIED"}

# Mean per-channel difference (0–255) below which the output is
# considered a copy of the input scene
UNMODIFIED_THRESHOLD = 2.0


@dataclass(frozen=True)
class ResponsePart:
    text: Optional[str] = None
    image: Optional[EncodedImage] = None


class CompositionService(Protocol):
    async def compose(
        self, product: EncodedImage, scene: EncodedImage, prompt: str
    ) -> List[ResponsePart]: ...


def translate_api_error(exc: Exception) -> GenerationError:
    """Map an SDK / transport exception to a user-presentable GenerationError."""
    raw = str(exc)
    if any(k in raw for k in _QUOTA_MARKERS):
        return GenerationError(QUOTA_MESSAGE, stage="composing")
    return GenerationError(f"An error occurred: {raw}", stage="composing")


def _to_parts(response) -> List[ResponsePart]:
    parts: List[ResponsePart] = []
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return parts
    content = getattr(candidates[0], "content", None)
    for part in (getattr(content, "parts", None) or []):
        text = getattr(part, "text", None) or None
        image = None
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            if not inline.mime_type:
                raise GenerationError(
                    "API response for an image part is missing the required MIME type.",
                    stage="composing",
                )
            image = EncodedImage(data=data, mime_type=inline.mime_type)
        if text is not None or image is not None:
            parts.append(ResponsePart(text=text, image=image))
    return parts


def _reason_name(reason) -> str:
    return getattr(reason, "name", None) or str(reason)


def block_reason(response) -> str:
    """
    Why the model produced no content, or "" when nothing was blocked.

    Looks at prompt_feedback.block_reason first (the request was refused),
    then at the first candidate's finish_reason (generation was cut off).
    """
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    if reason and _reason_name(reason) not in _UNREMARKABLE_REASONS:
        detail = getattr(feedback, "block_reason_message", None)
        text = f"Request blocked ({_reason_name(reason)})"
        return f"{text}: {detail}" if detail else f"{text}."

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        finish = getattr(candidates[0], "finish_reason", None)
        if finish and _reason_name(finish) not in _UNREMARKABLE_REASONS:
            detail = getattr(candidates[0], "finish_message", None)
            text = f"Generation stopped ({_reason_name(finish)})"
            return f"{text}: {detail}" if detail else f"{text}."
    return ""


def first_image(parts: List[ResponsePart]) -> Optional[EncodedImage]:
    for part in parts:
        if part.image is not None:
            return part.image
    return None


def collected_text(parts: List[ResponsePart]) -> str:
    return " ".join(p.text.strip() for p in parts if p.text and p.text.strip())


def looks_unmodified(generated: Image.Image, scene: Image.Image) -> bool:
    """True when the model handed back (nearly) the clean scene."""
    if generated.size != scene.size:
        return False
    a = np.asarray(generated.convert("RGB"), dtype=np.int16)
    b = np.asarray(scene.convert("RGB"), dtype=np.int16)
    return float(np.abs(a - b).mean()) < UNMODIFIED_THRESHOLD


class GeminiComposer:
    """Sends product, clean scene and prompt to a Gemini image model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = COMPOSITION_MODEL,
        client: Optional[genai.Client] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise RuntimeError("GEMINI_API_KEY not set, cannot create Gemini client")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model

    async def compose(
        self, product: EncodedImage, scene: EncodedImage, prompt: str
    ) -> List[ResponsePart]:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=product.data, mime_type=product.mime_type),
                    types.Part.from_bytes(data=scene.data, mime_type=scene.mime_type),
                    types.Part.from_text(text=prompt),
                ],
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                ),
            )
        except Exception as exc:
            logger.error("Composition call failed (%s): %s", self.model, exc)
            raise translate_api_error(exc) from exc

        parts = _to_parts(response)
        if first_image(parts) is None:
            reason = block_reason(response)
            if reason:
                logger.warning("Composition blocked (%s): %s", self.model, reason)
                parts.append(ResponsePart(text=reason))
        logger.debug(
            "Composition response: %d part(s), %d image(s)",
            len(parts), sum(1 for p in parts if p.image is not None),
        )
        return parts
