# ===== main.py - JIBBY AGENT HUB: REST API, WEBHOOKS AND WEBSOCKET =====
# Standard library imports
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

# Third-party imports
import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

# Local imports
from config import Settings, settings
from core.jibby_service import JibbyService
from models.agent_config import AgentConfig
from models.api import APIError, APIResponse, MessageIn
from models.message import ChannelType
from services.exceptions import (
    AdapterInitError,
    ConfigurationError,
    ConversationNotFoundError,
    JibbyError,
    NotConnectedError,
    ProviderError,
    UnsupportedChannelError,
)
from services.voice_service import VoiceService
from utils.log_setup import configure_logging

VERSION = "1.0.0"

STATUS_CODES = {
    ConversationNotFoundError: 404,
    UnsupportedChannelError: 400,
    NotConnectedError: 503,
    AdapterInitError: 503,
    ProviderError: 502,
    ConfigurationError: 400,
}

# Router events pushed to every connected socket
BROADCAST_EVENTS = ("messageSent", "messageProcessed", "callHandled", "error")

SECRET_MARKERS = ("token", "secret", "api_key", "apikey")


def to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return jsonable_encoder(value)


def public_config(config: AgentConfig) -> Dict[str, Any]:
    """Config as JSON with credentials masked"""
    def mask(node):
        if isinstance(node, dict):
            return {
                key: ("***" if value and isinstance(value, str) and any(m in key.lower() for m in SECRET_MARKERS)
                      else mask(value))
                for key, value in node.items()
            }
        return node
    return mask(config.model_dump(by_alias=True, mode="json"))


def envelope(status_code: int, code: str, message: str, details: Any = None,
             environment: str = "development") -> JSONResponse:
    error = APIError(code=code, message=message,
                     details=jsonable_encoder(details) if environment == "development" else None)
    return JSONResponse(status_code=status_code, content=APIResponse(success=False, error=error).to_dict())


def success(data: Any = None) -> Dict[str, Any]:
    return APIResponse(success=True, data=data).to_dict()


def build_router(app_settings: Settings) -> JibbyService:
    return JibbyService(app_settings.to_agent_config(), queue_size=app_settings.inbound_queue_size)


# ===== WEBSOCKET CONNECTIONS =====

class ConnectionManager:
    """Connected sockets and their conversation rooms"""

    def __init__(self):
        self.active: Set[WebSocket] = set()
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active.add(websocket)
        logger.info(f"🔌 New WebSocket connection ({len(self.active)} active)")

    def disconnect(self, websocket: WebSocket) -> None:
        self.active.discard(websocket)
        for members in self.rooms.values():
            members.discard(websocket)
        logger.info(f"WebSocket disconnected ({len(self.active)} active)")

    def join(self, websocket: WebSocket, conversation_id: str) -> None:
        self.rooms.setdefault(conversation_id, set()).add(websocket)
        logger.debug(f"Socket joined conversation {conversation_id}")

    async def _send(self, websockets, frame: Dict[str, Any]) -> None:
        for websocket in list(websockets):
            try:
                await websocket.send_json(frame)
            except Exception as e:
                logger.warning(f"⚠️ Dropping socket after failed send: {e}")
                self.disconnect(websocket)

    async def broadcast(self, event: str, data: Any) -> None:
        await self._send(self.active, {"event": event, "data": to_jsonable(data)})

    async def broadcast_room(self, conversation_id: str, event: str, data: Any) -> None:
        await self._send(self.rooms.get(conversation_id, set()), {"event": event, "data": to_jsonable(data)})

    def bind(self, router: JibbyService) -> None:
        for event in BROADCAST_EVENTS:
            router.on(event, self._broadcaster(event))

    def _broadcaster(self, event: str):
        async def listener(data: Any = None):
            await self.broadcast(event, data)
        return listener


# ===== APP FACTORY =====

def create_app(router: Optional[JibbyService] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start and stop the router with the application"""
        configure_logging(app_settings.log_level, app_settings.log_format, app_settings.log_dir)
        logger.info("🚀 Starting Jibby Agent Hub...")
        app_settings.log_configuration_status()

        try:
            await app.state.router.start()
            logger.info("✅ Startup completed")
        except Exception as e:
            logger.error(f"❌ Startup failed: {e}")
            logger.warning("⚠️ Continuing in degraded mode")

        yield

        logger.info("🛑 Shutting down...")
        try:
            await app.state.router.stop()
            logger.info("✅ Shutdown complete")
        except Exception as e:
            logger.error(f"❌ Shutdown error: {e}")

    app = FastAPI(
        title="Jibby Agent Hub",
        description="AI agent hub routing WhatsApp, voice and social conversations",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.router = router or build_router(app_settings)
    app.state.connections = ConnectionManager()
    app.state.connections.bind(app.state.router)

    register_exception_handlers(app)
    app.include_router(core_routes)
    app.include_router(api_routes)
    app.include_router(webhook_routes)
    app.add_api_websocket_route("/ws", websocket_endpoint)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    def environment(request: Request) -> str:
        return request.app.state.settings.environment

    @app.exception_handler(JibbyError)
    async def jibby_error_handler(request: Request, exc: JibbyError):
        status_code = next((code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 500)
        logger.warning(f"⚠️ {request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
        return envelope(status_code, exc.code, exc.message, exc.details, environment(request))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return envelope(400, "VALIDATION_ERROR", str(exc), environment=environment(request))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return envelope(400, "VALIDATION_ERROR", "Invalid request body", exc.errors(), environment(request))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return envelope(exc.status_code, str(exc.status_code), message, environment=environment(request))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
        return envelope(500, "INTERNAL_ERROR", "Internal server error", str(exc), environment(request))


async def require_token(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    token = request.app.state.settings.api_token
    if not token:
        return
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_router(request: Request) -> JibbyService:
    return request.app.state.router


async def read_payload(request: Request) -> Dict[str, Any]:
    """Webhook body as a dict: JSON or form-encoded"""
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        return body if isinstance(body, dict) else {"payload": body}
    form = await request.form()
    return dict(form)


def twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


def voice_adapter(router: JibbyService) -> VoiceService:
    voice = router.adapters.get(ChannelType.VOICE)
    if not isinstance(voice, VoiceService):
        raise UnsupportedChannelError(ChannelType.VOICE.value)
    return voice


# ===== CORE ENDPOINTS =====

core_routes = APIRouter()


@core_routes.get("/")
async def root(router: JibbyService = Depends(get_router)):
    return {
        "message": "Jibby Agent Hub API",
        "status": "running" if router.running else "stopped",
        "version": VERSION,
        "channels": [channel.value for channel in router.adapters],
    }


@core_routes.get("/health")
async def health_check(router: JibbyService = Depends(get_router)):
    """Per-component status"""
    return {
        "status": "healthy" if router.running else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "services": router.get_status(),
    }


# ===== REST API =====

api_routes = APIRouter(prefix="/api/v1", dependencies=[Depends(require_token)])


@api_routes.post("/messages")
async def send_message(body: MessageIn, router: JibbyService = Depends(get_router)):
    await router.send_message(body.to_message_dict())
    return success({"message": "Message sent successfully"})


@api_routes.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, router: JibbyService = Depends(get_router)):
    history = router.get_conversation_history(conversation_id)
    return success({"conversation": history.to_dict()})


@api_routes.get("/config")
async def get_config(router: JibbyService = Depends(get_router)):
    return success({"config": public_config(router.config)})


@api_routes.patch("/config")
async def update_config(body: Dict[str, Any], router: JibbyService = Depends(get_router)):
    config = router.update_config(body)
    return success({"config": public_config(config)})


# ===== WEBHOOKS =====

webhook_routes = APIRouter(prefix="/webhook")


@webhook_routes.post("/voice/incoming")
async def voice_incoming(request: Request, router: JibbyService = Depends(get_router)):
    """Twilio voice webhook: register the call and answer it with TwiML"""
    voice = voice_adapter(router)
    payload = await read_payload(request)
    call = await voice.handle_incoming_call(payload)
    if call is None:
        return twiml_response(voice.build_twiml("Sorry, we could not take your call.", listen=False))
    return twiml_response(voice.handle_call(call))


@webhook_routes.post("/voice/speech")
async def voice_speech(request: Request, background_tasks: BackgroundTasks,
                       router: JibbyService = Depends(get_router)):
    """Caller speech; the reply is pushed into the live call once generated"""
    voice = voice_adapter(router)
    payload = await read_payload(request)
    background_tasks.add_task(router.on_webhook, "voice", payload)
    return twiml_response(voice.build_hold_twiml())


@webhook_routes.post("/{provider}")
@webhook_routes.post("/{provider}/{event}")
async def provider_webhook(provider: str, request: Request, background_tasks: BackgroundTasks,
                           event: Optional[str] = None, router: JibbyService = Depends(get_router)):
    """Acknowledge immediately; adapters consume `<provider>:webhook` in the background"""
    payload = await read_payload(request)
    logger.debug(f"📥 Webhook received for {provider}{'/' + event if event else ''}")
    background_tasks.add_task(router.on_webhook, provider, payload)
    return {"status": "received"}


# ===== WEBSOCKET =====

async def websocket_endpoint(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.connections
    router: JibbyService = websocket.app.state.router
    await manager.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON frame"}})
                continue
            if not isinstance(frame, dict):
                await websocket.send_json({"event": "error", "data": {"message": "Frame must be a JSON object"}})
                continue
            await handle_frame(websocket, frame, manager, router)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)


async def handle_frame(websocket: WebSocket, frame: Dict[str, Any], manager: ConnectionManager,
                       router: JibbyService) -> None:
    event = frame.get("event")
    data = frame.get("data")
    frame_id = frame.get("id")

    async def ack(payload: Dict[str, Any]):
        await websocket.send_json({"event": "ack", "id": frame_id, "data": payload})

    if event == "join":
        conversation_id = data.get("conversationId") if isinstance(data, dict) else data
        if not conversation_id:
            await ack({"status": "error", "message": "conversationId is required"})
            return
        manager.join(websocket, str(conversation_id))
        await ack({"status": "ok"})

    elif event == "sendMessage":
        try:
            sent = await router.send_message(data or {})
        except Exception as e:
            await ack({"status": "error", "message": str(e)})
            return
        await manager.broadcast_room(sent.conversation_id, "newMessage", sent)
        await ack({"status": "ok"})

    else:
        await ack({"status": "error", "message": f"Unknown event: {event}"})


app = create_app()


# ===== RUN SERVER =====

if __name__ == "__main__":
    logger.info(f"🚀 Starting Jibby Agent Hub on port {settings.port}")
    logger.info(f"Environment: {settings.environment}")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.environment == "development",
    )
