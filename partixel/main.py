"""FastAPI entry-point for the partixel renderer."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import psutil
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .animation_service import AnimationService
from .config import EffectParams, Settings, get_settings
from .logging_config import configure_logging
from .state import InvalidImageError, PartixelError, RecordingError

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(settings)
service = AnimationService(settings=settings)
_process = psutil.Process()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await service.start()
    logger.info("Renderer up: %d particles, %.0f fps", service.engine.particle_count, settings.animation.fps)
    try:
        yield
    finally:
        await service.stop()
        logger.info("Renderer down after %d frames", service.status()["frames_rendered"])


app = FastAPI(title="partixel", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def _validation_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]


@app.exception_handler(RecordingError)
async def recording_error_handler(request: Request, exc: RecordingError) -> JSONResponse:
    logger.error("Recording failed in %s: %s", request.url.path, exc)
    return _error(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.exception_handler(PartixelError)
async def engine_state_handler(request: Request, exc: PartixelError) -> JSONResponse:
    """No image loaded, no frame yet, recording busy: the request conflicts with engine state."""
    logger.info("Rejected %s: %s", request.url.path, exc)
    return _error(str(exc), status.HTTP_409_CONFLICT)


@app.exception_handler(RequestValidationError)
async def params_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Invalid payload for %s: %d error(s)", request.url.path, len(exc.errors()))
    return JSONResponse(
        {"status": "error", "message": "Invalid parameters", "errors": _validation_errors(exc)},
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok", **service.status()})


@app.get("/debug/performance")
async def debug_performance() -> JSONResponse:
    """Renderer process load next to the frame counters it produced."""
    with _process.oneshot():
        rss = _process.memory_info().rss
        cpu_percent = _process.cpu_percent(interval=None)
        threads = _process.num_threads()
    state = service.status()
    return JSONResponse({
        "cpu_percent": round(cpu_percent, 1),
        "process_rss_mb": round(rss / (1024 * 1024), 1),
        "threads": threads,
        "system_memory_percent": round(psutil.virtual_memory().percent, 1),
        "frames_rendered": state["frames_rendered"],
        "particles": state["particles"],
        "recording": state["recording"],
    })


@app.post("/image")
async def upload_image(request: Request) -> JSONResponse:
    """Replace the dot field with one sampled from the posted image bytes."""
    data = await request.body()
    try:
        particles = service.load_image_bytes(data)
    except InvalidImageError as e:
        logger.warning("Rejected image upload (%d bytes): %s", len(data), e)
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    logger.info("🖼️ Image loaded: %d particles", particles)
    return JSONResponse({"status": "ok", "particles": particles})


@app.get("/params")
async def get_params() -> JSONResponse:
    return JSONResponse(service.engine.params.model_dump())


@app.put("/params")
async def put_params(payload: EffectParams) -> JSONResponse:
    """Apply new effect parameters; generation changes trigger a rebuild."""
    rebuilt = service.update_params(payload)
    return JSONResponse({"status": "ok", "rebuilt": rebuilt, "params": payload.model_dump()})


@app.post("/formation/replay")
async def replay_formation() -> JSONResponse:
    service.replay()
    return JSONResponse({"status": "ok"})


@app.get("/snapshot.png")
async def snapshot() -> Response:
    return Response(content=service.snapshot_png(), media_type="image/png")


@app.post("/record")
async def record_formation() -> Response:
    """Replay the formation and return it as an encoded video."""
    data = await service.record_formation()
    media_type = "video/mp4" if settings.recording.suffix == ".mp4" else "application/octet-stream"
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="particle-formation{settings.recording.suffix}"'},
    )


@app.get("/preview")
async def preview_stream() -> StreamingResponse:
    """Stream rendered frames as MJPEG."""
    boundary = "frame"

    async def frame_iterator() -> AsyncIterator[bytes]:
        try:
            async for frame in service.preview_stream():
                header = (
                    f"--{boundary}\r\n"
                    f"Content-Type: image/jpeg\r\n"
                    f"Content-Length: {len(frame)}\r\n\r\n"
                ).encode("ascii")
                yield header + frame + b"\r\n"
        except Exception as e:
            logger.error(f"Preview stream error: {e}")

    media_type = f"multipart/x-mixed-replace; boundary={boundary}"
    return StreamingResponse(frame_iterator(), media_type=media_type)


@app.websocket("/ws/pointer")
async def pointer_socket(ws: WebSocket) -> None:
    """Surface-local pointer events: {"type": "move"|"enter"|"leave", "x": .., "y": ..}."""
    await ws.accept()
    try:
        while True:
            message = await ws.receive_json()
            kind = message.get("type")
            if kind == "move":
                try:
                    service.pointer_move(float(message["x"]), float(message["y"]))
                except (KeyError, TypeError, ValueError):
                    logger.debug("Ignoring malformed pointer move: %s", message)
            elif kind == "enter":
                service.pointer_enter()
            elif kind == "leave":
                service.pointer_leave()
            else:
                logger.debug("Ignoring unknown pointer message: %s", message)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Unexpected error in pointer websocket: {e}")
    finally:
        service.pointer_leave()


@app.websocket("/ws/ui")
async def ui_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = service.register_ui()
    try:
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                break  # Clean shutdown

            payload = {
                "type": event.type,
                "mode": event.mode.value if event.mode else None,
                "data": event.data,
            }
            if event.error:
                payload["error"] = event.error

            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.debug(f"WebSocket send failed (client disconnected): {e}")
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass  # Clean shutdown
    except Exception as e:
        logger.error(f"Unexpected error in UI websocket: {e}")
    finally:
        service.unregister_ui(queue)
        try:
            await ws.close()
        except Exception:
            pass
