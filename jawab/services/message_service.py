from dataclasses import dataclass
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jawab.config import settings
from jawab.logging_config import LoggerAdapter, get_logger
from jawab.models import Conversation, Tenant
from jawab.services.ai_service import generate_reply
from jawab.services.conversation_service import (
    ConcurrentUpdateError,
    ConversationNotFoundError,
    append_messages,
    build_message,
    get_or_create_conversation,
    history_for_model,
)
from jawab.services.intent_service import UNKNOWN_INTENT, IntentResult, classify_intent
from jawab.services.llm import LLMProvider
from jawab.services.prompt_service import ChannelHint, build_system_prompt
from jawab.services.state_machine import HandledBy

logger = get_logger("message_service")

# spoken turns are latency bound; skip the extra classification call
UNCLASSIFIED_CHANNELS = ("voice",)

PERSISTENCE_ERRORS = (SQLAlchemyError, ConcurrentUpdateError, ConversationNotFoundError)


@dataclass
class TurnOutcome:
    conversation_id: Optional[UUID]
    reply: Optional[str]
    intent: IntentResult
    ai_paused: bool = False


def _open_conversation(
    db: Session,
    tenant: Tenant,
    customer_id: str,
    channel: str,
    display_name: Optional[str],
    log: LoggerAdapter,
) -> Optional[Conversation]:
    try:
        return get_or_create_conversation(db, tenant.id, customer_id, channel, display_name=display_name)
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Conversation lookup failed, replying without history: {e}", exc_info=True)
        return None


def handle_inbound_turn(
    db: Session,
    llm: LLMProvider,
    tenant: Tenant,
    customer_id: str,
    channel: str,
    user_text: str,
    channel_hint: Optional[ChannelHint] = None,
    display_name: Optional[str] = None,
    context_updates: Optional[dict] = None,
    history: Optional[List[dict]] = None,
    reply_transform: Optional[Callable[[str], str]] = None,
) -> TurnOutcome:
    """Run one customer turn: classify, load history, generate, persist.

    Voice turns are not classified and leave the stored intent untouched.

    Persistence failures never cost the customer their reply. When staff have
    taken the conversation over, only the customer's message is stored and no
    reply is produced.
    """
    log = LoggerAdapter(logger, {"channel": channel, "tenant_id": str(tenant.id)})

    classified = channel not in UNCLASSIFIED_CHANNELS
    intent = classify_intent(llm, user_text) if classified else UNKNOWN_INTENT
    latest_intent = intent.intent.value if classified else None
    conversation = _open_conversation(db, tenant, customer_id, channel, display_name, log)
    conversation_id = conversation.id if conversation is not None else None

    if (
        conversation is not None
        and conversation.handled_by == HandledBy.HUMAN.value
        and settings.ai_pauses_on_human_takeover
    ):
        try:
            append_messages(
                db,
                tenant.id,
                conversation_id,
                [build_message("user", user_text)],
                latest_intent=latest_intent,
                intent_confidence=intent.confidence,
                context_updates=context_updates,
            )
        except PERSISTENCE_ERRORS as e:
            db.rollback()
            log.error(f"Failed to store message during human takeover: {e}")
        log.info(
            "AI paused, conversation handled by staff",
            context={"conversation_id": str(conversation_id), "intent": intent.intent.value},
        )
        return TurnOutcome(conversation_id=conversation_id, reply=None, intent=intent, ai_paused=True)

    system_prompt = build_system_prompt(tenant, channel_hint, channel=channel)
    model_history = history if history is not None else history_for_model(conversation)
    reply = generate_reply(
        llm,
        system_prompt,
        model_history,
        user_text,
        max_attempts=settings.llm_max_attempts,
        alert_context={"tenant_id": str(tenant.id), "channel": channel},
    )
    if reply_transform is not None:
        reply = reply_transform(reply)

    if conversation is not None:
        try:
            append_messages(
                db,
                tenant.id,
                conversation_id,
                [build_message("user", user_text), build_message("model", reply)],
                latest_intent=latest_intent,
                intent_confidence=intent.confidence,
                context_updates=context_updates,
            )
        except PERSISTENCE_ERRORS as e:
            db.rollback()
            log.error(f"Failed to persist turn, reply still returned: {e}", exc_info=True)

    log.info(
        "Turn handled",
        context={
            "conversation_id": str(conversation_id) if conversation_id else None,
            "intent": intent.intent.value,
            "confidence": intent.confidence,
        },
    )
    return TurnOutcome(conversation_id=conversation_id, reply=reply, intent=intent)
