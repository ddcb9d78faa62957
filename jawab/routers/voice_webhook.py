from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jawab.database import get_db
from jawab.dependencies import get_call_sessions, get_llm
from jawab.logging_config import get_logger
from jawab.models import Tenant
from jawab.schemas.inbound import VoiceInbound
from jawab.services.alert_service import alert_critical
from jawab.services.call_session import CallPhase, CallSessionStore
from jawab.services.conversation_service import (
    append_messages,
    build_message,
    find_active_conversation,
    get_or_create_conversation,
    history_for_model,
)
from jawab.services.llm import LLMProvider
from jawab.services.message_service import handle_inbound_turn
from jawab.services.prompt_service import ChannelHint
from jawab.services.tenant_service import get_tenant, resolve_tenant_for_voice
from jawab.services.voice_service import (
    build_voice_twiml,
    clean_for_speech,
    detect_text_language,
    error_twiml,
    greeting_for,
    not_configured_twiml,
    should_end_call,
)

logger = get_logger("voice_webhook")

router = APIRouter()

STAFF_HANDOFF_SPEECH = "A member of our team will get back to you shortly. Goodbye!"


def _twiml(content: str) -> Response:
    return Response(content=content, media_type="text/xml")


def _caller_id(inbound: VoiceInbound) -> str:
    return inbound.from_number or inbound.call_sid


def _start_call(db: Session, sessions: CallSessionStore, inbound: VoiceInbound) -> str:
    resolution = resolve_tenant_for_voice(db, inbound.to_number)
    if resolution is None:
        logger.error("No tenant for dialled number", extra={"context": {"to": inbound.to_number}})
        return not_configured_twiml()

    tenant = resolution.tenant
    conversation_id = None
    try:
        conversation = get_or_create_conversation(
            db, tenant.id, _caller_id(inbound), "voice", context={"call_sid": inbound.call_sid}
        )
        conversation_id = conversation.id
        if (conversation.context or {}).get("call_sid") != inbound.call_sid:
            append_messages(db, tenant.id, conversation_id, [], context_updates={"call_sid": inbound.call_sid})
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Voice conversation save failed: {e}", exc_info=True)

    sessions.start(inbound.call_sid, tenant.id, conversation_id)
    greeting, language = greeting_for(tenant)

    logger.info(
        "Call started",
        extra={
            "context": {
                "channel": "voice",
                "tenant_id": str(tenant.id),
                "conversation_id": str(conversation_id) if conversation_id else None,
                "call_sid": inbound.call_sid,
            }
        },
    )
    return build_voice_twiml(greeting, continue_gather=True, language=language)


def _recover_session(db: Session, sessions: CallSessionStore, inbound: VoiceInbound) -> Optional[Tenant]:
    """Rebuild call state after a restart from the durable conversation."""
    resolution = resolve_tenant_for_voice(db, inbound.to_number)
    if resolution is None:
        return None
    tenant = resolution.tenant
    conversation = find_active_conversation(db, tenant.id, _caller_id(inbound), "voice")
    sessions.start(
        inbound.call_sid,
        tenant.id,
        conversation.id if conversation else None,
        turns=history_for_model(conversation),
        phase=CallPhase.TURN,
    )
    logger.warning(
        "Call session recovered",
        extra={"context": {"call_sid": inbound.call_sid, "tenant_id": str(tenant.id)}},
    )
    return tenant


def _continue_call(db: Session, llm: LLMProvider, sessions: CallSessionStore, inbound: VoiceInbound) -> str:
    session = sessions.touch(inbound.call_sid)
    tenant = get_tenant(db, session.tenant_id) if session and session.tenant_id else None
    if tenant is None:
        tenant = _recover_session(db, sessions, inbound)
    if tenant is None:
        return not_configured_twiml()

    user_text = inbound.user_text
    outcome = handle_inbound_turn(
        db,
        llm,
        tenant,
        customer_id=_caller_id(inbound),
        channel="voice",
        user_text=user_text,
        channel_hint=ChannelHint.VOICE,
        context_updates={"call_sid": inbound.call_sid},
        history=sessions.history(inbound.call_sid),
        reply_transform=clean_for_speech,
    )

    if outcome.reply is None:
        sessions.end(inbound.call_sid)
        return build_voice_twiml(STAFF_HANDOFF_SPEECH, continue_gather=False, language=detect_text_language(user_text))

    reply = outcome.reply
    sessions.add_turns(inbound.call_sid, [build_message("user", user_text), build_message("model", reply)])
    language = detect_text_language(reply)

    if should_end_call(reply, user_text):
        sessions.end(inbound.call_sid)
        logger.info("Call ended", extra={"context": {"call_sid": inbound.call_sid, "tenant_id": str(tenant.id)}})
        return build_voice_twiml(reply, continue_gather=False, language=language)

    return build_voice_twiml(reply, continue_gather=True, language=language)


@router.post("/api/webhooks/voice")
async def voice_webhook(
    request: Request,
    db: Session = Depends(get_db),
    llm: LLMProvider = Depends(get_llm),
    sessions: CallSessionStore = Depends(get_call_sessions),
):
    """Twilio voice webhook: greeting on a new call, one spoken turn otherwise."""
    try:
        form = await request.form()
        inbound = VoiceInbound(
            call_sid=str(form.get("CallSid") or ""),
            from_number=str(form.get("From") or ""),
            to_number=str(form.get("To") or ""),
            call_status=form.get("CallStatus"),
            speech_result=form.get("SpeechResult") or None,
            digits=form.get("Digits") or None,
        )
        logger.info(
            f"Voice webhook: {inbound.call_status}",
            extra={"context": {"call_sid": inbound.call_sid, "from": inbound.from_number}},
        )

        if inbound.is_new_call:
            return _twiml(_start_call(db, sessions, inbound))
        return _twiml(_continue_call(db, llm, sessions, inbound))

    except Exception as e:
        logger.error(f"Voice webhook error: {e}", exc_info=True)
        alert_critical("Voice webhook crashed", {"error": str(e)[:200]})
        return _twiml(error_twiml())


@router.get("/api/webhooks/voice")
async def voice_webhook_status(sessions: CallSessionStore = Depends(get_call_sessions)):
    return {
        "status": "Voice webhook is active",
        "active_calls": len(sessions),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
