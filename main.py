"""
FastAPI Application for the FitConnect coaching core.

Exposes appointment scheduling and client/dietitian messaging over HTTP.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from core.domain import DomainError
from schemas import (
    OpenChatRequest,
    ProposeAppointmentRequest,
    RescheduleRequest,
    SendMessageRequest,
    StatusChangeRequest,
    TypingRequest,
)
from shared.cosmos_client import build_cosmos_client
from shared.roles import Actor, ActorRole
from use_cases.messaging import (
    ChatService,
    CosmosChatStore,
    CosmosTypingStore,
    InMemoryChatStore,
    InMemoryTypingStore,
)
from use_cases.messaging.domain import ChatError, ChatErrorKind, MessageDraft
from use_cases.scheduling import (
    AppointmentService,
    CosmosAppointmentStore,
    InMemoryAppointmentStore,
    parse_window,
)
from use_cases.scheduling.domain import AppointmentDraft, AppointmentStatus, Unauthorized

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)

# HTTP status for each non-retryable error code; retryable errors map to 503
STATUS_BY_CODE = {
    "invalid_request": 400,
    "invalid_image_data": 400,
    "unauthorized": 403,
    "appointment_not_found": 404,
    "chat_not_found": 404,
    "time_slot_unavailable": 409,
    "invalid_transition": 409,
    "invalid_time_range": 422,
    "store_unavailable": 502,
}


def build_services(app: FastAPI):
    """Create stores and services for the configured backend and keep them on app.state."""
    display_tz = ZoneInfo(settings.display_timezone)
    cosmos = None
    if settings.store_backend == "cosmos":
        cosmos = build_cosmos_client(settings)
        appointments = CosmosAppointmentStore(cosmos.get_container("appointments"))
        chats = CosmosChatStore(cosmos.get_container("chats"))
        typing = CosmosTypingStore(cosmos.get_container("typing"))
        logger.info(f"Using Cosmos DB store: {settings.cosmos_endpoint}")
    else:
        appointments = InMemoryAppointmentStore()
        chats = InMemoryChatStore()
        typing = InMemoryTypingStore()
        logger.info("Using in-memory store")

    app.state.cosmos = cosmos
    app.state.display_tz = display_tz
    app.state.appointment_service = AppointmentService(
        appointments,
        commit_attempts=settings.schedule_commit_attempts,
        display_tz=display_tz,
    )
    app.state.chat_service = ChatService(
        chats,
        typing,
        send_attempts=settings.message_send_attempts,
        typing_throttle=timedelta(seconds=settings.typing_throttle_seconds),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    logger.info("Starting FitConnect coaching core...")
    build_services(app)

    yield

    # Cleanup
    logger.info("Shutting down...")
    if app.state.cosmos is not None:
        app.state.cosmos.close()


# Create FastAPI app
app = FastAPI(
    title="FitConnect Coaching Core",
    description="Appointment scheduling and client/dietitian messaging",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, error: DomainError):
    """Render any domain error returned by a service."""
    status_code = 503 if error.retryable else STATUS_BY_CODE.get(error.code, 500)
    logger.info(f"{request.method} {request.url.path} failed: {error.code}")
    return JSONResponse(status_code=status_code, content={"error": error.to_dict()})


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """The acting user, from the X-Actor-Id / X-Actor-Role headers."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor headers")
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown actor role: {x_actor_role}")
    return Actor(id=x_actor_id, role=role)


def get_appointment_service(request: Request) -> AppointmentService:
    return request.app.state.appointment_service


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "store_backend": settings.store_backend,
    }


# =============================================================================
# APPOINTMENT ENDPOINTS
# =============================================================================

@app.post("/api/appointments", status_code=201)
def propose_appointment(
    body: ProposeAppointmentRequest,
    actor: Actor = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book an appointment. Clients request; dietitians may book confirmed directly."""
    draft = AppointmentDraft(
        dietitian_id=body.dietitian_id,
        client_id=body.client_id,
        client_name=body.client_name,
        start=body.start_time,
        end=body.end_time,
        notes=body.notes,
        initial_status=body.initial_status,
    )
    appointment = service.propose(draft, actor).unwrap()
    return appointment.to_dict(service.display_tz)


@app.get("/api/dietitians/{dietitian_id}/appointments")
def list_appointments(
    dietitian_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[AppointmentStatus] = None,
    actor: Actor = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """
    A dietitian's appointments starting in [start, end).

    Without a window the dietitian's day in the display timezone is used.
    """
    if not actor.is_dietitian or actor.id != dietitian_id:
        raise Unauthorized()

    if start is None and end is None:
        window = service.day_window()
    elif start is None or end is None:
        raise HTTPException(status_code=400, detail="Both start and end are required")
    else:
        window = parse_window(start, end).unwrap()

    appointments = service.appointments_between(dietitian_id, window, status=status)
    return {
        "appointments": [a.to_dict(service.display_tz) for a in appointments],
        "count": len(appointments),
    }


@app.get("/api/dietitians/{dietitian_id}/appointments/{appointment_id}")
def get_appointment(
    dietitian_id: str,
    appointment_id: str,
    actor: Actor = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get(dietitian_id, appointment_id).unwrap()
    if actor.id not in (appointment.client_id, appointment.dietitian_id):
        raise Unauthorized()
    return appointment.to_dict(service.display_tz)


@app.post("/api/dietitians/{dietitian_id}/appointments/{appointment_id}/status")
def change_status(
    dietitian_id: str,
    appointment_id: str,
    body: StatusChangeRequest,
    actor: Actor = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.transition(dietitian_id, appointment_id, body.status, actor).unwrap()
    return appointment.to_dict(service.display_tz)


@app.post("/api/dietitians/{dietitian_id}/appointments/{appointment_id}/reschedule")
def reschedule_appointment(
    dietitian_id: str,
    appointment_id: str,
    body: RescheduleRequest,
    actor: Actor = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    window = parse_window(body.start_time, body.end_time).unwrap()
    appointment = service.reschedule(
        dietitian_id, appointment_id, window, actor, notes=body.notes
    ).unwrap()
    return appointment.to_dict(service.display_tz)


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================

@app.post("/api/chats")
def open_chat(
    body: OpenChatRequest,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    """Get or create the chat between a client and a dietitian."""
    if actor.id not in (body.client.id, body.dietitian.id):
        raise ChatError(ChatErrorKind.UNAUTHORIZED)
    chat = service.open_chat(body.client.to_domain(), body.dietitian.to_domain()).unwrap()
    return chat.to_dict()


@app.get("/api/users/{user_id}/chats")
def list_chats(
    user_id: str,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    if actor.id != user_id:
        raise ChatError(ChatErrorKind.UNAUTHORIZED)
    chats = service.chats_for(user_id).unwrap()
    return {"chats": [chat.to_dict() for chat in chats]}


@app.post("/api/chats/{chat_id}/messages", status_code=201)
def send_message(
    chat_id: str,
    body: SendMessageRequest,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    payload = body.model_dump(exclude_none=True)
    payload.update(chat_id=chat_id, sender_id=actor.id)
    draft = MessageDraft.from_payload(payload)
    return service.send(draft).unwrap().to_dict()


@app.get("/api/chats/{chat_id}/messages")
def list_messages(
    chat_id: str,
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    messages = service.messages(chat_id, limit=limit, reader_id=actor.id).unwrap()
    return {"messages": [m.to_dict() for m in messages]}


@app.post("/api/chats/{chat_id}/read")
def mark_read(
    chat_id: str,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    return {"marked": service.mark_read(chat_id, actor.id).unwrap()}


@app.put("/api/chats/{chat_id}/typing")
def publish_typing(
    chat_id: str,
    body: TypingRequest,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    return {"published": service.publish_typing(chat_id, actor.id, body.user_name).unwrap()}


@app.delete("/api/chats/{chat_id}/typing")
def clear_typing(
    chat_id: str,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    return {"cleared": service.clear_typing(chat_id, actor.id).unwrap()}


@app.get("/api/chats/{chat_id}/typing")
def typing_users(
    chat_id: str,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
):
    indicators = service.typing_users(chat_id, exclude_user_id=actor.id, reader_id=actor.id).unwrap()
    return {"typing": [indicator.to_dict() for indicator in indicators]}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
