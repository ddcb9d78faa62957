import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jawab.config import settings
from jawab.database import Base
from jawab.models import Tenant
from jawab.services.call_session import CallSessionStore
from jawab.services.llm import LLMProvider
from jawab.services.meta_service import MetaGraphClient
from jawab.services.result import Result

ADMIN_TOKEN = "test-admin-token"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeLLM(LLMProvider):
    """Scripted provider. Items in `replies` are returned in order (the last one repeats);
    exception instances are raised instead."""

    def __init__(self, replies=None, intent_json='{"intent": "other", "confidence": 0.5}', configured=True):
        self.replies = list(replies or ["Hello! How can I help you today? 😊"])
        self.intent_json = intent_json
        self.configured = configured
        self.chat_calls = []
        self.complete_calls = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def chat(self, system_prompt, history, user_message):
        self.chat_calls.append({"system_prompt": system_prompt, "history": list(history), "user_message": user_message})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def complete(self, prompt):
        self.complete_calls.append(prompt)
        if isinstance(self.intent_json, Exception):
            raise self.intent_json
        return self.intent_json


class FakeMessenger:
    def __init__(self, configured=True):
        self.configured = configured
        self.sent = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send_whatsapp(self, to, body, from_number=None, media_urls=None):
        self.sent.append({"to": to, "body": body, "from_number": from_number, "media_urls": media_urls})
        return Result.success("SM123")


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_tenant(db):
    base_time = datetime(2025, 1, 1, tzinfo=timezone.utc)
    created = []

    def _make(**overrides):
        fields = {
            "name": "Glamour Salon",
            "name_ar": "صالون جلامور",
            "location": "Dubai Marina",
            "address": "Marina Walk, Dubai",
            "services": [{"name": "Haircut", "name_ar": "قص الشعر", "price": 150, "duration": 45}],
            "hours": {"monday": {"open": "09:00", "close": "21:00"}, "friday": None},
            "custom_faqs": [],
            "tone": "friendly",
            "default_language": "auto",
            "config": {},
        }
        fields.update(overrides)
        stamp = fields.pop("created_at", base_time + timedelta(minutes=len(created)))
        tenant = Tenant(created_at=stamp, updated_at=stamp, **fields)
        db.add(tenant)
        db.commit()
        created.append(tenant)
        return tenant

    return _make


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_messenger():
    return FakeMessenger()


@pytest.fixture
def fake_meta():
    meta = Mock(spec=MetaGraphClient)
    meta.is_configured = True
    meta.send_direct_message.return_value = Result.success("mid.1")
    meta.reply_to_comment.return_value = Result.success("comment.reply.1")
    meta.send_typing_indicator.return_value = None
    meta.get_user_profile.return_value = None
    return meta


@pytest.fixture
def call_sessions():
    return CallSessionStore(ttl_minutes=30)


@pytest.fixture
def client(db, fake_llm, fake_messenger, fake_meta, call_sessions, monkeypatch):
    from fastapi.testclient import TestClient

    from jawab.database import get_db
    from jawab.dependencies import get_call_sessions, get_llm, get_messenger, get_meta_client
    from jawab.main import app

    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    monkeypatch.setattr(settings, "tenant_fallback_mode", "first")
    monkeypatch.setattr(settings, "twilio_validate_signature", False)

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_llm] = lambda: fake_llm
    app.dependency_overrides[get_messenger] = lambda: fake_messenger
    app.dependency_overrides[get_meta_client] = lambda: fake_meta
    app.dependency_overrides[get_call_sessions] = lambda: call_sessions
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
