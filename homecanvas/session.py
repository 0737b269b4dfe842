"""
session.py — Caller-owned handle around the orchestrator.

Holds what a front end needs between runs:

  state        IDLE → LOADING → SUCCESS | ERROR   (aborts return to IDLE)
  progress     {"resizing": "pending" | "in-progress" | "completed", ...}
  result       last CompositionResult
  debug_image  marked scene, kept even when a later stage failed
  error        single user-facing message for the last failed run

Only one run may be in flight; `cancel()` trips the current run's token.
Buffers are dropped by `release()` (or leaving the `with` block).
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

from .cancel import CancelToken
from .errors import AbortError, HomeCanvasError, PipelineError
from .geometry import RelativePoint
from .images import EncodedImage
from .orchestrator import CompositionOrchestrator, CompositionRequest
from .progress import PipelineProgress, Stage
from .result import CompositionResult, save_result

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "An unknown error occurred."


class AppState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class CompositionSession:
    def __init__(
        self,
        orchestrator: CompositionOrchestrator,
        output_dir: Optional[Path] = None,
        on_progress: Optional[Callable[[Dict[str, str]], None]] = None,
        save_debug: bool = False,
    ) -> None:
        self.orchestrator = orchestrator
        self.output_dir = Path(output_dir) if output_dir else None
        self.on_progress = on_progress
        self.save_debug = save_debug

        self.state = AppState.IDLE
        self.progress: Dict[str, str] = {}
        self.result: Optional[CompositionResult] = None
        self.debug_image: Optional[EncodedImage] = None
        self.error: Optional[str] = None
        self.saved_path: Optional[Path] = None
        self._token: Optional[CancelToken] = None
        self._tracker = PipelineProgress()

    # ── Lifetime ──────────────────────────────────────────────────────────────

    def __enter__(self) -> "CompositionSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def release(self) -> None:
        """Cancel anything in flight and drop every held image buffer."""
        self.cancel()
        self.result = None
        self.debug_image = None
        self.progress = {}

    @property
    def busy(self) -> bool:
        return self.state is AppState.LOADING

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()

    # ── Run ───────────────────────────────────────────────────────────────────

    async def submit(
        self,
        product: bytes,
        scene: bytes,
        point: RelativePoint,
    ) -> Optional[CompositionResult]:
        """Run one composition from in-memory image bytes."""
        return await self.submit_request(
            CompositionRequest(product=product, scene=scene, point=point)
        )

    async def submit_files(
        self,
        product_path: Path,
        scene_path: Path,
        point: RelativePoint,
    ) -> Optional[CompositionResult]:
        """Run one composition from image files on disk."""
        return await self.submit_request(
            CompositionRequest.from_paths(product_path, scene_path, point)
        )

    async def submit_request(self, request: CompositionRequest) -> Optional[CompositionResult]:
        """
        Run one composition.

        Returns the result, or None when the run was cancelled or failed
        (see `state` / `error`). Raises PipelineError if a run is already
        in flight.
        """
        if self.busy:
            raise PipelineError("A composition is already running")

        self._token = request.token
        self.state = AppState.LOADING
        self.error = None
        self.result = None
        self.debug_image = None
        self.saved_path = None
        self._tracker.reset()
        self._publish()

        try:
            result = await self.orchestrator.run(request, on_progress=self._on_stage)
        except AbortError:
            logger.info("Image fusion cancelled.")
            self._reset_to_idle()
            return None
        except HomeCanvasError as exc:
            self.debug_image = exc.debug_image
            self._fail(str(exc) or UNKNOWN_ERROR)
            return None
        except Exception as exc:
            logger.exception("Unexpected failure in composition")
            self._fail(str(exc) or UNKNOWN_ERROR)
            return None
        finally:
            self._token = None

        self.result = result
        self.debug_image = result.debug_image
        self.state = AppState.SUCCESS
        if self._tracker.current is not Stage.DONE:
            self._tracker.complete()
            self._publish()

        if self.output_dir is not None:
            try:
                self.saved_path = save_result(
                    result, self.output_dir, request.point, save_debug=self.save_debug,
                )
            except OSError as exc:
                logger.warning("Auto-save to %s failed: %s", self.output_dir, exc)
        return result

    def use_result_as_scene(self) -> bytes:
        """Final image bytes, ready to be submitted as the next scene."""
        if self.result is None:
            raise PipelineError("No composition result to reuse as a scene")
        data = self.result.final_image.data
        self.result = None
        self.debug_image = None
        self.state = AppState.IDLE
        self.progress = {}
        return data

    # ── Internals ─────────────────────────────────────────────────────────────

    def _on_stage(self, stage: Stage) -> None:
        self._tracker.advance(stage)
        self._publish()

    def _publish(self) -> None:
        self._set_progress(self._tracker.as_dict())

    def _set_progress(self, progress: Dict[str, str]) -> None:
        self.progress = progress
        if self.on_progress is not None:
            self.on_progress(dict(progress))

    def _reset_to_idle(self) -> None:
        self.state = AppState.IDLE
        self._set_progress({})

    def _fail(self, message: str) -> None:
        self.state = AppState.ERROR
        self.error = message
        self._set_progress({})
