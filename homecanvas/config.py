"""
config.py — Runtime settings, read from the environment / .env.

  GEMINI_API_KEY                 required for the Gemini services
  HOMECANVAS_DESCRIPTION_MODEL   vision model for the location description
  HOMECANVAS_COMPOSITION_MODEL   image model for the composite
  HOMECANVAS_DIMENSION           square canvas size (default 1024)
  HOMECANVAS_JPEG_QUALITY        re-encode quality (default 95)
  HOMECANVAS_DESCRIBE_TIMEOUT    seconds, 0 = no timeout
  HOMECANVAS_COMPOSE_TIMEOUT     seconds, 0 = no timeout
  HOMECANVAS_OUTPUT_DIR          auto-save directory (empty = don't save)
  HOMECANVAS_LOG_LEVEL           logging level name (default INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DESCRIPTION_MODEL = "gemini-2.5-flash"
COMPOSITION_MODEL = "gemini-2.5-flash-image-preview"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    api_key: str = ""
    description_model: str = DESCRIPTION_MODEL
    composition_model: str = COMPOSITION_MODEL
    dimension: int = 1024
    jpeg_quality: int = 95
    describe_timeout: float = 60.0
    compose_timeout: float = 0.0
    output_dir: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        output_dir = os.environ.get("HOMECANVAS_OUTPUT_DIR", "").strip()
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
            description_model=os.environ.get("HOMECANVAS_DESCRIPTION_MODEL") or DESCRIPTION_MODEL,
            composition_model=os.environ.get("HOMECANVAS_COMPOSITION_MODEL") or COMPOSITION_MODEL,
            dimension=_env_int("HOMECANVAS_DIMENSION", 1024),
            jpeg_quality=_env_int("HOMECANVAS_JPEG_QUALITY", 95),
            describe_timeout=_env_float("HOMECANVAS_DESCRIBE_TIMEOUT", 60.0),
            compose_timeout=_env_float("HOMECANVAS_COMPOSE_TIMEOUT", 0.0),
            output_dir=Path(output_dir) if output_dir else None,
            log_level=os.environ.get("HOMECANVAS_LOG_LEVEL", "INFO").upper(),
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY not set in environment / .env")
        return self.api_key
