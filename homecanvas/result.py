"""
result.py — Packaging of a finished composition.

  package(...)            → CompositionResult (immutable)
  CompositionResult.to_parts()  → labelled parts for history / gallery consumers
  save_result(...)        → image-fusion-<ts>.jpeg + JSON sidecar on disk
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from .errors import PipelineError
from .geometry import RelativePoint
from .images import EncodedImage

logger = logging.getLogger(__name__)

DEBUG_LABEL = "Debug View (with marker)"
FINAL_LABEL = "Final Result"
PROMPT_SEPARATOR = "|PROMPT|"


@dataclass(frozen=True)
class ResultPart:
    label: str
    image: EncodedImage


@dataclass(frozen=True)
class CompositionResult:
    final_image: EncodedImage
    debug_image: Optional[EncodedImage]
    final_prompt: str
    location_description: str = ""
    model_text: str = ""

    @property
    def final_image_url(self) -> str:
        return self.final_image.data_url

    @property
    def debug_image_url(self) -> str:
        return self.debug_image.data_url if self.debug_image else ""

    def to_parts(self) -> List[ResultPart]:
        parts: List[ResultPart] = []
        if self.debug_image is not None:
            parts.append(ResultPart(
                label=f"{DEBUG_LABEL}{PROMPT_SEPARATOR}{self.final_prompt}",
                image=self.debug_image,
            ))
        parts.append(ResultPart(label=FINAL_LABEL, image=self.final_image))
        return parts


def split_debug_label(label: str) -> Tuple[str, str]:
    """'Debug View (with marker)|PROMPT|<prompt>' → (title, prompt)."""
    if PROMPT_SEPARATOR in label:
        title, prompt = label.split(PROMPT_SEPARATOR, 1)
        return title, prompt
    return label, ""


def package(
    debug_image: Optional[EncodedImage],
    final_image: Optional[EncodedImage],
    prompt: str,
    location_description: str = "",
    model_text: str = "",
) -> CompositionResult:
    if final_image is None or not final_image.data:
        raise PipelineError("Pipeline reported success without a final image", stage="done")
    return CompositionResult(
        final_image=final_image,
        debug_image=debug_image,
        final_prompt=prompt,
        location_description=location_description,
        model_text=model_text,
    )


# ── On-disk record ────────────────────────────────────────────────────────────

class FusionRecord(BaseModel):
    """JSON sidecar written next to an auto-saved composite."""
    image_file: str
    debug_file: Optional[str] = None
    drop_point: Tuple[float, float] = Field(description="(x%, y%) on the scene")
    location_description: str = ""
    final_prompt: str
    model_text: str = ""
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))


def save_result(
    result: CompositionResult,
    output_dir: Path,
    point: RelativePoint,
    save_debug: bool = False,
) -> Path:
    """
    Write the final JPEG (and optionally the marked scene) into output_dir.

    Returns the path of the final image.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000)

    image_path = output_dir / f"image-fusion-{stamp}.jpeg"
    image_path.write_bytes(result.final_image.data)

    debug_name = None
    if save_debug and result.debug_image is not None:
        debug_path = output_dir / f"image-fusion-{stamp}-debug.jpeg"
        debug_path.write_bytes(result.debug_image.data)
        debug_name = debug_path.name

    record = FusionRecord(
        image_file=image_path.name,
        debug_file=debug_name,
        drop_point=(point.x_percent, point.y_percent),
        location_description=result.location_description,
        final_prompt=result.final_prompt,
        model_text=result.model_text,
    )
    sidecar = output_dir / f"image-fusion-{stamp}.json"
    sidecar.write_text(record.model_dump_json(indent=2), encoding="utf-8")

    logger.info("Saved composite → %s", image_path)
    return image_path
