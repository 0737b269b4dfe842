"""
errors.py — Exception taxonomy for the compositing pipeline.

  DecodeError       input bytes are not a decodable image (fatal)
  RenderingError    Pillow could not allocate / encode a canvas (fatal)
  DescriptionError  location description failed (internal, absorbed)
  GenerationError   composition call returned no image (fatal)
  PipelineError     contract violation between stages (programmer error)
  AbortError        user cancelled; not a failure, callers go back to idle
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .images import EncodedImage


class HomeCanvasError(Exception):
    """Base class. `stage` names the pipeline stage that raised, when known."""

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage
        # Marked scene, attached once the marking stage has produced it
        self.debug_image: Optional["EncodedImage"] = None


class DecodeError(HomeCanvasError):
    pass


class RenderingError(HomeCanvasError):
    pass


class DescriptionError(HomeCanvasError):
    pass


class GenerationError(HomeCanvasError):
    """
    The composition model gave us nothing usable.

    `model_text` holds whatever text the model returned instead of an image,
    so the caller can show it next to the error.
    """

    def __init__(
        self,
        message: str,
        model_text: str = "",
        stage: Optional[str] = None,
    ) -> None:
        if model_text:
            message = f"{message} The model said: {model_text}"
        super().__init__(message, stage=stage)
        self.model_text = model_text


class PipelineError(HomeCanvasError):
    pass


class AbortError(HomeCanvasError):
    def __init__(self, message: str = "Aborted by user", stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
