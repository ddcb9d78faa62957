from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from jawab.config import settings
from jawab.database import Base, engine, get_db
from jawab.logging_config import get_logger, setup_logging
from jawab.models import Conversation, Tenant
from jawab.routers import admin, conversations, meta_webhook, voice_webhook, whatsapp_webhook
from jawab.services.call_session import CallSessionStore
from jawab.services.llm import build_llm_provider
from jawab.services.meta_service import MetaGraphClient
from jawab.services.twilio_service import TwilioMessenger

setup_logging(settings.log_level)
logger = get_logger("main")

app = FastAPI(
    title="Jawab API",
    description="Backend service for the Jawab multi-tenant AI receptionist",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp_webhook.router)
app.include_router(voice_webhook.router)
app.include_router(meta_webhook.router)
app.include_router(conversations.router)
app.include_router(admin.router)

app.state.llm = build_llm_provider(settings)
app.state.messenger = TwilioMessenger(
    settings.twilio_account_sid,
    settings.twilio_auth_token,
    settings.twilio_whatsapp_number,
)
app.state.meta = MetaGraphClient(
    settings.meta_page_access_token,
    instagram_account_id=settings.instagram_account_id,
    api_version=settings.meta_graph_api_version,
    verify_token=settings.meta_verify_token,
)
app.state.call_sessions = CallSessionStore(
    ttl_minutes=settings.voice_session_ttl_minutes,
    max_turns=settings.conversation_window,
)


@app.on_event("startup")
def create_tables() -> None:
    if not settings.auto_create_tables:
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@app.on_event("startup")
def log_configuration() -> None:
    logger.info(
        "Jawab API started",
        extra={
            "context": {
                "llm_provider": settings.llm_provider,
                "llm_configured": app.state.llm.is_configured,
                "twilio_configured": app.state.messenger.is_configured,
                "meta_configured": app.state.meta.is_configured,
                "tenant_fallback_mode": settings.tenant_fallback_mode,
            }
        },
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    tenants_count = db.query(Tenant).count()
    conversations_count = db.query(Conversation).count()
    return {
        "status": "ok",
        "tenants": tenants_count,
        "conversations": conversations_count,
    }
