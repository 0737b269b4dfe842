"""Tests for the app-level session: state machine, progress map, auto-save."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from homecanvas.errors import PipelineError
from homecanvas.generator import ResponsePart
from homecanvas.geometry import RelativePoint
from homecanvas.orchestrator import CompositionOrchestrator
from homecanvas.session import AppState, CompositionSession

from conftest import FakeComposer, FakeDescriber, open_image

RANK = {"pending": 0, "in-progress": 1, "completed": 2}
POINT = RelativePoint(40, 60)


def _session(settings, composer=None, **kwargs):
    orch = CompositionOrchestrator(FakeDescriber(), composer or FakeComposer(), settings)
    return CompositionSession(orch, **kwargs)


class TestSubmit:
    def test_success(self, settings, product_bytes, scene_bytes):
        session = _session(settings)
        result = asyncio.run(session.submit(product_bytes, scene_bytes, POINT))
        assert result is not None
        assert session.state is AppState.SUCCESS
        assert session.result is result
        assert session.debug_image is result.debug_image
        assert session.error is None
        assert set(session.progress.values()) == {"completed"}
        assert session.saved_path is None

    def test_progress_snapshots_move_forward(self, settings, product_bytes, scene_bytes):
        snapshots = []
        session = _session(settings, on_progress=snapshots.append)
        asyncio.run(session.submit(product_bytes, scene_bytes, POINT))

        assert set(snapshots[0].values()) == {"pending"}
        assert set(snapshots[-1].values()) == {"completed"}
        for before, after in zip(snapshots, snapshots[1:]):
            for stage, status in after.items():
                assert RANK[status] >= RANK[before[stage]]
            assert list(after.values()).count("in-progress") <= 1

    def test_failure_keeps_debug_image(self, settings, product_bytes, scene_bytes):
        composer = FakeComposer(parts=[ResponsePart(text="No.")])
        session = _session(settings, composer)
        assert asyncio.run(session.submit(product_bytes, scene_bytes, POINT)) is None
        assert session.state is AppState.ERROR
        assert "No." in session.error
        assert session.debug_image is not None
        assert session.result is None
        assert session.progress == {}

    def test_unexpected_exception_becomes_error_state(self, settings, product_bytes, scene_bytes):
        session = _session(settings)

        async def broken_run(request, on_progress=None):
            raise RuntimeError("worker crashed")

        session.orchestrator.run = broken_run
        assert asyncio.run(session.submit(product_bytes, scene_bytes, POINT)) is None
        assert session.state is AppState.ERROR
        assert session.error == "worker crashed"
        assert not session.busy

    def test_cancel_returns_to_idle(self, settings, product_bytes, scene_bytes):
        composer = FakeComposer(hang=True)
        session = _session(settings, composer)

        async def scenario():
            task = asyncio.ensure_future(session.submit(product_bytes, scene_bytes, POINT))
            while session.progress.get("composing") != "in-progress":
                await asyncio.sleep(0.01)
            session.cancel()
            return await task

        assert asyncio.run(scenario()) is None
        assert composer.cancelled
        assert session.state is AppState.IDLE
        assert session.error is None
        assert session.progress == {}

    def test_cancel_from_signal_thread_exits_promptly(self, settings, tmp_path, product_bytes, scene_bytes):
        (tmp_path / "product.png").write_bytes(product_bytes)
        (tmp_path / "scene.jpg").write_bytes(scene_bytes)

        def on_progress(progress):
            if progress.get("composing") == "in-progress":
                threading.Timer(0.05, session.cancel).start()

        composer = FakeComposer(hang=True)
        session = _session(settings, composer, on_progress=on_progress)

        start = time.perf_counter()
        result = asyncio.run(
            session.submit_files(tmp_path / "product.png", tmp_path / "scene.jpg", POINT)
        )
        assert time.perf_counter() - start < 2
        assert result is None
        assert composer.cancelled
        assert session.state is AppState.IDLE

    def test_single_flight(self, settings, product_bytes, scene_bytes):
        session = _session(settings, FakeComposer(hang=True))

        async def scenario():
            task = asyncio.ensure_future(session.submit(product_bytes, scene_bytes, POINT))
            await asyncio.sleep(0)
            assert session.busy
            try:
                with pytest.raises(PipelineError):
                    await session.submit(product_bytes, scene_bytes, POINT)
            finally:
                session.cancel()
            return await task

        assert asyncio.run(scenario()) is None
        assert session.state is AppState.IDLE

    def test_submit_files(self, settings, tmp_path, product_bytes, scene_bytes):
        (tmp_path / "product.png").write_bytes(product_bytes)
        (tmp_path / "scene.jpg").write_bytes(scene_bytes)
        session = _session(settings)
        result = asyncio.run(
            session.submit_files(tmp_path / "product.png", tmp_path / "scene.jpg", POINT)
        )
        assert result.final_image.size == (1024, 576)
        assert session.state is AppState.SUCCESS

    def test_progress_map_follows_pipeline_progress(self, settings, product_bytes, scene_bytes):
        snapshots = []
        session = _session(settings, on_progress=snapshots.append)
        asyncio.run(session.submit(product_bytes, scene_bytes, POINT))

        # initial all-pending map, five stages, then DONE
        assert len(snapshots) == 7
        assert snapshots[3] == {
            "resizing": "completed",
            "marking": "completed",
            "describing": "in-progress",
            "composing": "pending",
            "cropping": "pending",
        }
        assert session.progress == snapshots[-1]


class TestAfterRun:
    def test_autosave(self, settings, tmp_path, product_bytes, scene_bytes):
        session = _session(settings, output_dir=tmp_path, save_debug=True)
        asyncio.run(session.submit(product_bytes, scene_bytes, POINT))
        assert session.saved_path is not None
        assert session.saved_path.parent == tmp_path
        assert session.saved_path.with_suffix(".json").exists()
        assert len(list(tmp_path.glob("image-fusion-*-debug.jpeg"))) == 1

    def test_result_reused_as_scene(self, settings, product_bytes, scene_bytes):
        session = _session(settings)
        asyncio.run(session.submit(product_bytes, scene_bytes, POINT))

        scene = session.use_result_as_scene()
        assert open_image(scene).size == (1024, 576)
        assert session.state is AppState.IDLE
        assert session.result is None

        again = asyncio.run(session.submit(product_bytes, scene, POINT))
        assert again.final_image.size == (1024, 576)

    def test_reuse_without_result(self, settings):
        with pytest.raises(PipelineError):
            _session(settings).use_result_as_scene()

    def test_context_exit_releases_buffers(self, settings, product_bytes, scene_bytes):
        with _session(settings) as session:
            asyncio.run(session.submit(product_bytes, scene_bytes, POINT))
            assert session.result is not None
        assert session.result is None
        assert session.debug_image is None
        assert session.progress == {}
