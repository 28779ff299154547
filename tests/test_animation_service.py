import asyncio
import itertools

import cv2
import numpy as np
import pytest

from partixel.animation_service import AnimationService
from partixel.config import AnimationSettings, RecordingSettings, Settings
from partixel.recorder import FormationRecorder
from partixel.state import InvalidImageError, PartixelError, RecordingError, SimulationMode


def _png(value=255, width=100, height=100):
    ok, buf = cv2.imencode(".png", np.full((height, width, 3), value, dtype=np.uint8))
    assert ok
    return buf.tobytes()


def _drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        random_seed=11,
        log_directory=tmp_path,
        animation=AnimationSettings(fps=200, ui_event_queue_size=16),
        recording=RecordingSettings(fps=10, settle_ms=0, fourcc="MJPG", suffix=".avi"),
    )


@pytest.fixture
def service(settings):
    return AnimationService(settings=settings)


async def test_image_upload_publishes_build_event(service):
    queue = service.register_ui()
    particles = service.load_image_bytes(_png())
    assert particles == 625

    [event] = _drain(queue)
    assert event.type == "dot_field_built"
    assert event.data["particles"] == 625
    assert event.data["width"] == 100.0


async def test_invalid_upload_keeps_state(service):
    queue = service.register_ui()
    with pytest.raises(InvalidImageError):
        service.load_image_bytes(b"garbage")
    assert service.engine.field is None
    assert _drain(queue) == []


async def test_load_image_path(service, tmp_path):
    path = tmp_path / "white.png"
    path.write_bytes(_png(width=40, height=20))
    assert service.load_image_path(path) == 50


async def test_default_image_is_loaded_on_start(settings, tmp_path):
    path = tmp_path / "start.png"
    path.write_bytes(_png())
    service = AnimationService(settings=settings.model_copy(update={"default_image": path}))
    await service.start()
    try:
        assert service.engine.particle_count == 625
    finally:
        await service.stop()


async def test_steps_publish_formation_complete(service):
    service.load_image_bytes(_png())
    queue = service.register_ui()

    assert service.step(0.0) is not None
    assert service.status()["mode"] == "forming"
    service.step(8000.0)

    [event] = _drain(queue)
    assert event.type == "formation_complete"
    assert event.mode is SimulationMode.INTERACTIVE
    assert service.status()["frames_rendered"] == 2


async def test_replay_requires_image(service):
    with pytest.raises(PartixelError):
        service.replay()

    service.load_image_bytes(_png())
    queue = service.register_ui()
    service.replay()
    assert [e.type for e in _drain(queue)] == ["formation_requested"]
    assert service.engine.formation_pending


async def test_update_params_reports_rebuild(service):
    service.load_image_bytes(_png())
    queue = service.register_ui()
    params = service.engine.params

    assert service.update_params(params.model_copy(update={"mouse_radius": 150})) is False
    assert service.update_params(params.model_copy(update={"grid_spacing": 8})) is True
    events = _drain(queue)
    assert [e.data["rebuilt"] for e in events if e.type == "params_updated"] == [False, True]
    assert service.engine.particle_count == 13 * 13


async def test_full_ui_queue_drops_oldest(tmp_path):
    settings = Settings(
        _env_file=None, log_directory=tmp_path, animation=AnimationSettings(ui_event_queue_size=2)
    )
    service = AnimationService(settings=settings)
    queue = service.register_ui()
    service.load_image_bytes(_png())
    service.update_params(service.engine.params.model_copy(update={"mouse_radius": 120}))
    service.replay()
    assert [e.type for e in _drain(queue)] == ["params_updated", "formation_requested"]

    service.unregister_ui(queue)
    service.replay()
    assert queue.empty()


async def test_pointer_input_needs_running_loop(service):
    service.load_image_bytes(_png())
    service.pointer_enter()
    service.pointer_move(10.0, 10.0)
    assert service.engine.trail.position is None

    await service.start()
    try:
        service.pointer_enter()
        service.pointer_move(10.0, 10.0)
        assert service.engine.trail.position == (10.0, 10.0)
        service.pointer_leave()
        assert service.engine.trail.position is None
    finally:
        await service.stop()
    assert not service.running


async def test_snapshot_png(service):
    with pytest.raises(PartixelError):
        service.snapshot_png()
    service.load_image_bytes(_png())
    service.step(0.0)
    assert service.snapshot_png().startswith(b"\x89PNG")


async def test_preview_subscribers_receive_jpeg(service):
    service.load_image_bytes(_png())
    stream = service.preview_stream()
    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)

    service.step(0.0)
    frame = await asyncio.wait_for(pending, timeout=1.0)
    assert frame.startswith(b"\xff\xd8")
    await stream.aclose()


async def test_record_formation_requires_image_and_loop(service):
    with pytest.raises(PartixelError):
        await service.record_formation()
    service.load_image_bytes(_png())
    with pytest.raises(PartixelError):
        await service.record_formation()


async def test_record_formation_returns_video(settings):
    ticks = itertools.count(0.0, 250.0)
    service = AnimationService(settings=settings, clock=lambda: next(ticks))
    service.load_image_bytes(_png())
    queue = service.register_ui()

    await service.start()
    try:
        data = await asyncio.wait_for(service.record_formation(), timeout=20.0)
    finally:
        await service.stop()

    assert data[:4] == b"RIFF"
    types = [e.type for e in _drain(queue)]
    assert types.index("recording_started") < types.index("recording_complete")
    assert "formation_complete" in types
    assert not service.recording


async def test_stop_fails_pending_recording(service):
    service.load_image_bytes(_png())
    await service.start()
    task = asyncio.ensure_future(service.record_formation())
    await asyncio.sleep(0.05)
    assert service.recording

    await service.stop()
    with pytest.raises(PartixelError):
        await task


async def test_stop_waits_for_encode(settings):
    ticks = itertools.count(0.0, 250.0)
    service = AnimationService(settings=settings, clock=lambda: next(ticks))
    service.load_image_bytes(_png())
    await service.start()
    task = asyncio.ensure_future(service.record_formation())
    for _ in range(400):
        if service._encode_task is not None:
            break
        await asyncio.sleep(0.01)
    assert service._encode_task is not None

    await service.stop()
    assert service._encode_task is None
    assert (await task)[:4] == b"RIFF"


async def test_writer_failure_aborts_recording(service, monkeypatch):
    def refuse(self, width, height):
        raise RecordingError("Could not open VideoWriter (MJPG)")

    monkeypatch.setattr(FormationRecorder, "_open_writer", refuse)
    service.load_image_bytes(_png())
    queue = service.register_ui()
    await service.start()
    try:
        with pytest.raises(RecordingError):
            await asyncio.wait_for(service.record_formation(), timeout=5.0)
    finally:
        await service.stop()

    types = [e.type for e in _drain(queue)]
    assert "recording_failed" in types
    assert service._recorder is None
    assert not service.recording
