"""
orchestrator.py — Drives one product-into-scene composition.

  RESIZING   → letterbox product and scene to D×D
  MARKING    → map the drop point, draw the red dot (debug image)
  DESCRIBING → vision model describes what is under the dot (best effort)
  COMPOSING  → image model places the product into the clean scene
  CROPPING   → cut the padding back out to the scene's aspect ratio
  DONE

Pillow work runs in the default executor so the event loop stays
responsive; the Gemini calls go through the SDK's async client. Each of
those awaits is raced against the run's CancelToken, so cancelling a run
also cancels an in-flight HTTP request. The token is also checked at every
stage boundary.
Nothing is retried: a caller that wants another attempt submits a new
request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Optional, Tuple

from .cancel import CancelToken
from .config import Settings
from .cropper import crop_to_original_aspect
from .describer import DescriptionService, GeminiDescriber
from .errors import (
    AbortError,
    DescriptionError,
    GenerationError,
    HomeCanvasError,
)
from .generator import (
    CompositionService,
    GeminiComposer,
    collected_text,
    first_image,
    looks_unmodified,
    translate_api_error,
)
from .geometry import RelativePoint, to_canvas_pixel
from .images import EncodedImage, decode_image
from .marker import MARKER_COLOR, draw_marker
from .normalizer import NormalizedImage, normalize
from .progress import PipelineProgress, ProgressCallback, Stage
from .prompts import DESCRIPTION_PROMPT, FALLBACK_LOCATION, build_composition_prompt
from .result import CompositionResult, package

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "The AI model did not return an image. Please try again."


@dataclass
class CompositionRequest:
    product: bytes
    scene: bytes
    point: RelativePoint
    token: CancelToken = field(default_factory=CancelToken)

    @classmethod
    def from_paths(
        cls,
        product_path: Path,
        scene_path: Path,
        point: RelativePoint,
        token: Optional[CancelToken] = None,
    ) -> "CompositionRequest":
        return cls(
            product=Path(product_path).read_bytes(),
            scene=Path(scene_path).read_bytes(),
            point=point,
            token=token or CancelToken(),
        )


def _with_timeout(aw: Awaitable, timeout: float) -> Awaitable:
    if timeout and timeout > 0:
        return asyncio.wait_for(aw, timeout)
    return aw


class CompositionOrchestrator:
    """Runs the five-stage pipeline; one instance may serve many runs in sequence."""

    def __init__(
        self,
        describer: DescriptionService,
        composer: CompositionService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.describer = describer
        self.composer = composer
        self.settings = settings or Settings()
        self.progress = PipelineProgress()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompositionOrchestrator":
        api_key = settings.require_api_key()
        return cls(
            describer=GeminiDescriber(api_key=api_key, model=settings.description_model),
            composer=GeminiComposer(api_key=api_key, model=settings.composition_model),
            settings=settings,
        )

    async def run(
        self,
        request: CompositionRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CompositionResult:
        token = request.token
        loop = asyncio.get_running_loop()
        dimension = self.settings.dimension
        quality = self.settings.jpeg_quality

        self.progress.reset()
        stage = Stage.RESIZING
        debug_image: Optional[EncodedImage] = None
        start = time.perf_counter()

        def enter(next_stage: Stage) -> None:
            nonlocal stage
            stage = next_stage
            token.raise_if_cancelled(next_stage.value)
            self.progress.advance(next_stage)
            if on_progress is not None:
                on_progress(next_stage)

        try:
            # ── Resizing ──────────────────────────────────────────────────────
            enter(Stage.RESIZING)
            product_norm, scene_norm = await token.guard(
                loop.run_in_executor(None, self._normalize_pair, request, dimension, quality),
                stage=stage.value,
            )
            scene_w, scene_h = scene_norm.original_size

            # ── Marking ───────────────────────────────────────────────────────
            enter(Stage.MARKING)
            mapped = to_canvas_pixel(request.point, scene_w, scene_h, dimension)
            marked = await token.guard(
                loop.run_in_executor(None, draw_marker, scene_norm, mapped, MARKER_COLOR, quality),
                stage=stage.value,
            )
            debug_image = marked.encoded
            logger.debug(
                "Drop point (%.1f%%, %.1f%%) of %d×%d → canvas (%.1f, %.1f)",
                request.point.x_percent, request.point.y_percent,
                scene_w, scene_h, mapped.x, mapped.y,
            )

            # ── Describing ────────────────────────────────────────────────────
            enter(Stage.DESCRIBING)
            location = await self._describe(marked.encoded, token)

            # ── Composing ─────────────────────────────────────────────────────
            enter(Stage.COMPOSING)
            prompt = build_composition_prompt(location)
            parts = await self._compose(product_norm.encoded, scene_norm.encoded, prompt, token)
            token.raise_if_cancelled(stage.value)

            generated = first_image(parts)
            model_text = collected_text(parts)
            if generated is None:
                logger.error("Model response did not contain an image part (text: %r)", model_text)
                raise GenerationError(NO_IMAGE_MESSAGE, model_text=model_text, stage=stage.value)

            # ── Cropping ──────────────────────────────────────────────────────
            enter(Stage.CROPPING)
            final_image = await token.guard(
                loop.run_in_executor(
                    None, self._crop, generated, scene_norm, scene_w, scene_h, dimension, quality,
                ),
                stage=stage.value,
            )

            result = package(debug_image, final_image, prompt, location, model_text)
            enter(Stage.DONE)
            logger.info(
                "Composition done in %.1fs (%d×%d scene)",
                time.perf_counter() - start, scene_w, scene_h,
            )
            return result

        except HomeCanvasError as exc:
            if exc.stage is None:
                exc.stage = stage.value
            if exc.debug_image is None:
                exc.debug_image = debug_image
            if isinstance(exc, AbortError):
                logger.info("Composition aborted during %s", exc.stage)
            else:
                logger.error(
                    "Composition failed during %s: %s: %s",
                    exc.stage, type(exc).__name__, exc,
                )
            raise

    # ── Stage helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def _normalize_pair(
        request: CompositionRequest,
        dimension: int,
        quality: int,
    ) -> Tuple[NormalizedImage, NormalizedImage]:
        product = decode_image(request.product)
        scene = decode_image(request.scene)
        return (
            normalize(product, dimension, quality=quality),
            normalize(scene, dimension, quality=quality),
        )

    async def _describe(self, marked: EncodedImage, token: CancelToken) -> str:
        """Best effort: every failure except cancellation becomes the fallback phrase."""
        call = self.describer.describe(marked, DESCRIPTION_PROMPT)
        try:
            text = await token.guard(
                _with_timeout(call, self.settings.describe_timeout),
                stage=Stage.DESCRIBING.value,
            )
            if not text or not text.strip():
                raise DescriptionError("empty description", stage=Stage.DESCRIBING.value)
            return text.strip()
        except AbortError:
            raise
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError):
                reason = f"timed out after {self.settings.describe_timeout:.0f}s"
            else:
                reason = f"{type(exc).__name__}: {exc}"
            logger.warning("Failed to generate semantic location description (%s); using fallback", reason)
            return FALLBACK_LOCATION

    async def _compose(
        self,
        product: EncodedImage,
        scene: EncodedImage,
        prompt: str,
        token: CancelToken,
    ):
        call = self.composer.compose(product, scene, prompt)
        try:
            return await token.guard(
                _with_timeout(call, self.settings.compose_timeout),
                stage=Stage.COMPOSING.value,
            )
        except HomeCanvasError:
            raise
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                f"Composition timed out after {self.settings.compose_timeout:.0f}s.",
                stage=Stage.COMPOSING.value,
            ) from exc
        except Exception as exc:
            raise translate_api_error(exc) from exc

    @staticmethod
    def _crop(
        generated: EncodedImage,
        scene_norm: NormalizedImage,
        scene_w: int,
        scene_h: int,
        dimension: int,
        quality: int,
    ) -> EncodedImage:
        image = decode_image(generated.data)
        if looks_unmodified(image, scene_norm.image):
            logger.warning("Generated image is nearly identical to the input scene")
        return crop_to_original_aspect(image, scene_w, scene_h, dimension, quality)
