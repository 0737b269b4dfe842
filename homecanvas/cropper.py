"""
cropper.py — Cut the letterbox padding back out of a generated square.
"""

from __future__ import annotations

from PIL import Image

from .errors import PipelineError
from .geometry import DEFAULT_DIMENSION, crop_region
from .images import JPEG_QUALITY, EncodedImage, encode_jpeg


def crop_to_original_aspect(
    generated: Image.Image,
    original_width: int,
    original_height: int,
    dimension: int = DEFAULT_DIMENSION,
    quality: int = JPEG_QUALITY,
) -> EncodedImage:
    """
    Extract the content box of the original frame from a D×D generation.

    No rescaling: the output is exactly content_width × content_height, the
    same rounding the normalizer used, so there are no seams.
    """
    if generated.size != (dimension, dimension):
        gw, gh = generated.size
        raise PipelineError(
            f"Generated image is {gw}×{gh}, expected {dimension}×{dimension}",
            stage="cropping",
        )

    box = crop_region(original_width, original_height, dimension)
    return encode_jpeg(generated.crop(box.as_crop()), quality)
