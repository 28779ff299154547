"""Frame loop orchestration: drives the engine, streams frames, publishes events."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
import time
from collections.abc import Callable
from typing import Any, AsyncIterator, Dict, List, Optional

import numpy as np

from .config import EffectParams, Settings, get_settings
from .imaging import decode_image, encode_jpeg, encode_png, load_image
from .recorder import FormationRecorder
from .simulation.engine import SimulationEngine
from .state import EngineEvent, PartixelError, RecordingError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class AnimationService:
    """Owns one SimulationEngine and ticks it at the configured frame rate.

    Everything runs on the event loop thread: pointer events, parameter
    updates and replay requests are plain method calls between frames, so the
    engine never needs locking.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        engine: Optional[SimulationEngine] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or SimulationEngine(
            self.settings.effect,
            display=self.settings.display,
            rng=np.random.default_rng(self.settings.random_seed),
        )
        self.engine.add_completion_listener(self._on_formation_complete)
        self._clock: Clock = clock or monotonic_ms
        self._preview_subscribers: List[asyncio.Queue[bytes]] = []
        self._ui_subscribers: List[asyncio.Queue[EngineEvent]] = []
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._recorder: Optional[FormationRecorder] = None
        self._recording_future: Optional[asyncio.Future[bytes]] = None
        self._encode_task: Optional[asyncio.Task[None]] = None
        self._frames_rendered = 0

    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._loop_task is not None

    @property
    def recording(self) -> bool:
        return self._recording_future is not None and not self._recording_future.done()

    async def start(self) -> None:
        """Load the configured default image (if any) and start the frame loop."""
        if self._loop_task:
            return
        if self.settings.default_image and self.engine.field is None:
            try:
                self.load_image_path(self.settings.default_image)
            except PartixelError as exc:
                logger.error("Default image %s could not be loaded: %s", self.settings.default_image, exc)
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._frame_loop(), name="partixel-frame-loop")
        logger.info("Animation service started (%.0f fps)", self.settings.animation.fps)

    async def stop(self) -> None:
        """Stop frame scheduling and detach pointer input."""
        if not self._loop_task:
            return
        self._stop_event.set()
        await self._loop_task
        self._loop_task = None
        self.engine.trail.reset()
        if self._encode_task is not None:
            await self._encode_task
            self._encode_task = None
        if self._recorder is not None:
            self._recorder.discard()
            self._recorder = None
        if self._recording_future and not self._recording_future.done():
            self._recording_future.set_exception(PartixelError("Animation service stopped during recording"))
        logger.info("Animation service stopped after %d frames", self._frames_rendered)

    async def _frame_loop(self) -> None:
        interval = 1.0 / self.settings.animation.fps
        try:
            while not self._stop_event.is_set():
                started = time.perf_counter()
                try:
                    self.step()
                except Exception:
                    logger.exception("Frame step failed")
                elapsed = time.perf_counter() - started
                await asyncio.sleep(max(0.0, interval - elapsed))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Frame loop crashed")
        finally:
            self._stop_event.clear()
            logger.info("Frame loop stopped")

    def step(self, now_ms: Optional[float] = None) -> Optional[np.ndarray]:
        """Render exactly one frame and hand it to recorder and preview subscribers."""
        now_ms = self._clock() if now_ms is None else now_ms
        recorder = self._recorder
        if recorder is not None and not recorder.active and not recorder.finished:
            # formation was requested with the recording and applies on this tick
            recorder.begin(now_ms)

        surface = self.engine.tick(now_ms)
        if surface is None:
            return None
        self._frames_rendered += 1

        if recorder is not None:
            try:
                finished = recorder.offer(surface, now_ms)
            except RecordingError as exc:
                self._abort_recording(recorder, exc)
            else:
                if finished:
                    self._recorder = None
                    self._encode_task = asyncio.get_running_loop().create_task(
                        self._finish_recording(recorder), name="partixel-encode"
                    )

        if self._preview_subscribers:
            self._broadcast_frame(encode_jpeg(surface, self.settings.animation.jpeg_quality))
        return surface

    # ------------------------------------------------------------------
    def load_image_bytes(self, data: bytes) -> int:
        """Decode and rebuild; InvalidImageError leaves the current field untouched."""
        return self._rebuild(decode_image(data))

    def load_image_path(self, path) -> int:
        return self._rebuild(load_image(path))

    def _rebuild(self, image: np.ndarray) -> int:
        field = self.engine.rebuild(image)
        geometry = field.geometry
        self._publish(
            "dot_field_built",
            particles=len(field),
            width=geometry.width,
            height=geometry.height,
            scale=geometry.scale,
        )
        return len(field)

    def update_params(self, params: EffectParams) -> bool:
        rebuilt = self.engine.update_params(params)
        self._publish("params_updated", params=params.model_dump(), rebuilt=rebuilt)
        return rebuilt

    def replay(self) -> None:
        if self.engine.field is None:
            raise PartixelError("No image loaded")
        self.engine.start_formation()
        self._publish("formation_requested")

    def pointer_enter(self) -> None:
        if self.running:
            self.engine.pointer_enter(self._clock())

    def pointer_move(self, x: float, y: float) -> None:
        if self.running:
            self.engine.pointer_move(x, y, self._clock())

    def pointer_leave(self) -> None:
        if self.running:
            self.engine.pointer_leave()

    def snapshot_png(self) -> bytes:
        surface = self.engine.snapshot()
        if surface is None:
            raise PartixelError("No frame rendered yet")
        return encode_png(surface)

    def status(self) -> Dict[str, Any]:
        mode = self.engine.mode
        return {
            "mode": mode.value if mode else None,
            "particles": self.engine.particle_count,
            "formation_progress": round(self.engine.formation_progress(), 4),
            "recording": self.recording,
            "frames_rendered": self._frames_rendered,
        }

    # ------------------------------------------------------------------
    async def record_formation(self) -> bytes:
        """Replay the formation and capture it (plus settle margin) as a video."""
        if self.engine.field is None:
            raise PartixelError("No image loaded")
        if not self.running:
            raise PartixelError("Animation service is not running")
        if self.recording:
            raise PartixelError("Recording already in progress")

        self._recording_future = asyncio.get_running_loop().create_future()
        self._recorder = FormationRecorder(self.settings.recording)
        self.engine.start_formation()
        self._publish("recording_started")
        return await self._recording_future

    async def _finish_recording(self, recorder: FormationRecorder) -> None:
        future = self._recording_future
        try:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, recorder.encode)
            self._publish("recording_complete", bytes=len(data), frames=recorder.frame_count)
            if future and not future.done():
                future.set_result(data)
        except Exception as exc:
            logger.exception("Recording encode failed")
            self._publish("recording_failed", error=str(exc))
            if future and not future.done():
                future.set_exception(exc)

    def _abort_recording(self, recorder: FormationRecorder, exc: RecordingError) -> None:
        logger.error("Recording aborted: %s", exc)
        recorder.discard()
        self._recorder = None
        self._publish("recording_failed", error=str(exc))
        future = self._recording_future
        if future and not future.done():
            future.set_exception(exc)

    def _on_formation_complete(self) -> None:
        self._publish("formation_complete", particles=self.engine.particle_count)

    # ------------------------------------------------------------------
    def register_ui(self) -> asyncio.Queue[EngineEvent]:
        queue: asyncio.Queue[EngineEvent] = asyncio.Queue(maxsize=self.settings.animation.ui_event_queue_size)
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[EngineEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    def _publish(self, event_type: str, *, error: Optional[str] = None, **data: Any) -> None:
        """Broadcast an engine event to all UI subscribers, dropping the oldest when full."""
        event = EngineEvent(type=event_type, mode=self.engine.mode, data=data, error=error)
        logger.debug("Engine event %s %s", event_type, data)
        for queue in list(self._ui_subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to broadcast event to subscriber: %s", e)

    def _broadcast_frame(self, frame: bytes) -> None:
        for q in list(self._preview_subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except QueueEmpty:
                    pass
            q.put_nowait(frame)

    async def preview_stream(self) -> AsyncIterator[bytes]:
        """Stream JPEG-encoded frames as they are rendered."""
        q: asyncio.Queue[bytes] = asyncio.Queue(maxsize=self.settings.animation.preview_queue_size)
        self._preview_subscribers.append(q)
        try:
            while True:
                frame = await q.get()
                yield frame
        finally:
            self._preview_subscribers.remove(q)


__all__ = ["AnimationService", "monotonic_ms"]
