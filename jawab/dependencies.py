from typing import Optional

from fastapi import Header, HTTPException, Request

from jawab.config import settings
from jawab.services.call_session import CallSessionStore
from jawab.services.llm import LLMProvider
from jawab.services.meta_service import MetaGraphClient
from jawab.services.twilio_service import TwilioMessenger


def get_llm(request: Request) -> LLMProvider:
    return request.app.state.llm


def get_messenger(request: Request) -> TwilioMessenger:
    return request.app.state.messenger


def get_meta_client(request: Request) -> MetaGraphClient:
    return request.app.state.meta


def get_call_sessions(request: Request) -> CallSessionStore:
    return request.app.state.call_sessions


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")
