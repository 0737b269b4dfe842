"""Shared test fixtures: synthetic images and fake Gemini services."""

from __future__ import annotations

import asyncio
import io
from typing import Callable, List, Optional

import pytest
from PIL import Image

from homecanvas.config import Settings
from homecanvas.generator import ResponsePart
from homecanvas.images import EncodedImage

PRODUCT_COLOR = (200, 120, 40)
SCENE_COLOR = (40, 160, 40)
GENERATED_COLOR = (90, 90, 200)

LOCATION_TEXT = "The product location is on the wooden floor, next to the sofa."


def make_image_bytes(
    width: int,
    height: int,
    color=SCENE_COLOR,
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, fmt)
    return buf.getvalue()


def make_split_image(width: int, height: int) -> Image.Image:
    """Left half red, right half blue."""
    img = Image.new("RGB", (width, height), (0, 0, 255))
    img.paste((255, 0, 0), (0, 0, width // 2, height))
    return img


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def close_to(pixel, expected, tol: int = 12) -> bool:
    return all(abs(int(a) - int(b)) <= tol for a, b in zip(pixel, expected))


class FakeDescriber:
    def __init__(
        self,
        text: str = LOCATION_TEXT,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.text = text
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def describe(self, image: EncodedImage, prompt: str) -> str:
        self.calls.append((image, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


class FakeComposer:
    """Returns a plain D×D image unless told otherwise.

    With hang=True the call never finishes on its own; `cancelled` records
    whether it was cancelled from outside.
    """

    def __init__(
        self,
        dimension: int = 1024,
        parts: Optional[List[ResponsePart]] = None,
        error: Optional[Exception] = None,
        on_call: Optional[Callable[[], None]] = None,
        hang: bool = False,
    ) -> None:
        self.dimension = dimension
        self.parts = parts
        self.error = error
        self.on_call = on_call
        self.hang = hang
        self.cancelled = False
        self.calls: List[tuple] = []

    async def compose(self, product: EncodedImage, scene: EncodedImage, prompt: str) -> List[ResponsePart]:
        self.calls.append((product, scene, prompt))
        if self.on_call is not None:
            self.on_call()
        if self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        if self.parts is not None:
            return self.parts
        generated = make_image_bytes(self.dimension, self.dimension, GENERATED_COLOR)
        return [
            ResponsePart(text="Here is the composed image."),
            ResponsePart(image=EncodedImage(data=generated, mime_type="image/png")),
        ]


@pytest.fixture
def product_bytes() -> bytes:
    return make_image_bytes(512, 512, PRODUCT_COLOR)


@pytest.fixture
def scene_bytes() -> bytes:
    return make_image_bytes(1600, 900, SCENE_COLOR, fmt="JPEG")


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", dimension=1024, describe_timeout=0.0, compose_timeout=0.0)
