import json
import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import connect, ensure_indexes, utcnow
from errors import ApiError
from relay import RoomRelay
from routers import ROUTERS
from security import optional_user
from settings import Settings

logger = logging.getLogger("sporty")


def error_body(message: str, error: Optional[str] = None) -> dict:
    body = {"success": False, "message": message}
    if error:
        body["error"] = error
    return body


def _validation_text(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append("%s: %s" % (loc, err.get("msg")) if loc else err.get("msg"))
    return ", ".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_body("Validation failed", _validation_text(exc.errors())))

    @app.exception_handler(PydanticValidationError)
    async def model_validation_handler(request: Request, exc: PydanticValidationError):
        return JSONResponse(status_code=400, content=error_body("Validation failed", _validation_text(exc.errors())))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        key_value = (exc.details or {}).get("keyValue") or {}
        field = next(iter(key_value), None)
        message = "%s already exists" % field if field else "Resource already exists"
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=error_body(message))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = error_body("Internal Server Error")
        if request.app.state.settings.is_development:
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=body)


async def relay_endpoint(websocket: WebSocket, token: Optional[str] = None):
    state = websocket.app.state
    user = await run_in_threadpool(optional_user, state.db, state.settings, token)
    await websocket.accept()
    relay: RoomRelay = state.relay
    who = user["id"] if user else "anonymous"
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                frame = None
            if not isinstance(frame, dict):
                await websocket.send_json({"event": "error", "message": "Frames must be JSON objects"})
                continue

            event = frame.get("event")
            room = frame.get("conversation_id")
            if event in ("join_conversation", "leave_conversation", "send_message") and not room:
                await websocket.send_json({"event": "error", "message": "conversation_id is required"})
            elif event == "join_conversation":
                relay.join(str(room), websocket)
                await websocket.send_json({"event": "joined", "conversation_id": room})
            elif event == "leave_conversation":
                relay.leave(str(room), websocket)
            elif event == "send_message":
                payload = {k: v for k, v in frame.items() if k != "event"}
                if user:
                    payload.setdefault("sender_id", user["id"])
                await relay.broadcast(str(room), {"event": "receive_message", "data": payload}, websocket)
            else:
                await websocket.send_json({"event": "error", "message": "Unknown event"})
    except WebSocketDisconnect:
        logger.info("Socket for %s disconnected", who)
    finally:
        relay.disconnect(websocket)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if settings.is_development else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if db is None:
        db = connect(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(app.state.db)
        logger.info("Sporty API started (%s)", settings.environment)
        yield

    app = FastAPI(title="Sporty API", version="0.2.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.relay = RoomRelay()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed)
        return response

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)
    app.add_api_websocket_route("/ws", relay_endpoint)

    @app.get("/")
    def root():
        return {"success": True, "message": "Sporty API running"}

    @app.get("/health")
    def health():
        try:
            app.state.db.command("ping")
            database = "connected"
        except PyMongoError:
            database = "unavailable"
        return {
            "status": "OK",
            "message": "Sporty API is running",
            "timestamp": utcnow().isoformat() + "Z",
            "environment": settings.environment,
            "database": database,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
