from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from jawab.config import settings
from jawab.logging_config import get_logger
from jawab.models import Conversation
from jawab.services.state_machine import ConversationStatus, HandledBy, transition

logger = get_logger("conversation_service")

MAX_APPEND_ATTEMPTS = 3


class ConversationNotFoundError(Exception):
    def __init__(self, conversation_id):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ConcurrentUpdateError(Exception):
    pass


class ActiveConversationExistsError(Exception):
    """Another conversation for the same customer and channel is already active."""

    def __init__(self, conversation_id):
        self.conversation_id = conversation_id
        super().__init__(f"Another active conversation exists for conversation {conversation_id}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def build_message(role: str, content: str, author: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    message = {"role": role, "content": content, "timestamp": (now or _now()).isoformat()}
    if author:
        message["author"] = author
    return message


def history_for_model(conversation: Optional[Conversation]) -> List[dict]:
    """Messages in the shape the completion providers expect."""
    if conversation is None:
        return []
    return [
        {"role": item.get("role", "user"), "content": item.get("content", "")}
        for item in (conversation.messages or [])
        if item.get("content")
    ]


def find_active_conversation(
    db: Session, tenant_id: UUID, customer_id: str, channel: str
) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(
            Conversation.tenant_id == tenant_id,
            Conversation.customer_id == customer_id,
            Conversation.channel == channel,
            Conversation.status == ConversationStatus.ACTIVE.value,
        )
        .first()
    )


def _as_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def get_conversation(db: Session, tenant_id: UUID, conversation_id: Union[str, UUID]) -> Optional[Conversation]:
    conversation_uuid = _as_uuid(conversation_id)
    tenant_uuid = _as_uuid(tenant_id)
    if conversation_uuid is None or tenant_uuid is None:
        return None
    return (
        db.query(Conversation)
        .filter(Conversation.id == conversation_uuid, Conversation.tenant_id == tenant_uuid)
        .first()
    )


def _is_idle(conversation: Conversation, idle_minutes: int, now: datetime) -> bool:
    if idle_minutes <= 0:
        return False
    last_activity = _as_aware(conversation.last_message_at) or _as_aware(conversation.started_at)
    if last_activity is None:
        return False
    return now - last_activity > timedelta(minutes=idle_minutes)


def get_or_create_conversation(
    db: Session,
    tenant_id: UUID,
    customer_id: str,
    channel: str,
    display_name: Optional[str] = None,
    idle_resolve_minutes: Optional[int] = None,
    context: Optional[dict] = None,
) -> Conversation:
    """Return the active conversation for (tenant, customer, channel), creating it if needed.

    The partial unique index on active conversations makes creation atomic: a
    losing concurrent insert rolls back and reads the winner.
    """
    idle_minutes = settings.conversation_idle_resolve_minutes if idle_resolve_minutes is None else idle_resolve_minutes
    now = _now()

    conversation = find_active_conversation(db, tenant_id, customer_id, channel)

    if conversation is not None and _is_idle(conversation, idle_minutes, now):
        logger.info(
            "Auto-resolving idle conversation",
            extra={"context": {"conversation_id": str(conversation.id), "idle_minutes": idle_minutes}},
        )
        conversation.status = ConversationStatus.RESOLVED.value
        conversation.resolved_at = now
        db.commit()
        conversation = None

    if conversation is not None:
        if display_name and not conversation.customer_name:
            conversation.customer_name = display_name
            db.commit()
        return conversation

    conversation = Conversation(
        tenant_id=tenant_id,
        customer_id=customer_id,
        customer_name=display_name,
        channel=channel,
        status=ConversationStatus.ACTIVE.value,
        handled_by=HandledBy.AI.value,
        messages=[],
        context=dict(context or {}),
        started_at=now,
        last_message_at=now,
    )
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_active_conversation(db, tenant_id, customer_id, channel)
        if existing is None:
            raise
        logger.info(
            "Concurrent conversation create, using existing",
            extra={"context": {"conversation_id": str(existing.id), "channel": channel}},
        )
        return existing

    logger.info(
        "Conversation created",
        extra={
            "context": {
                "tenant_id": str(tenant_id),
                "conversation_id": str(conversation.id),
                "channel": channel,
            }
        },
    )
    return conversation


def _update_with_retry(
    db: Session,
    tenant_id: UUID,
    conversation_id: Union[str, UUID],
    mutate: Callable[[Conversation], None],
) -> Conversation:
    """Apply mutate under the version guard, re-reading and retrying on conflict."""
    for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
        conversation = get_conversation(db, tenant_id, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        mutate(conversation)
        try:
            db.commit()
            return conversation
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Conversation write conflict, retry {attempt}/{MAX_APPEND_ATTEMPTS}",
                extra={"context": {"conversation_id": str(conversation_id)}},
            )
    raise ConcurrentUpdateError(f"Conversation {conversation_id} kept changing, gave up after {MAX_APPEND_ATTEMPTS} attempts")


def append_messages(
    db: Session,
    tenant_id: UUID,
    conversation_id: Union[str, UUID],
    new_messages: List[dict],
    latest_intent: Optional[str] = None,
    context_updates: Optional[dict] = None,
    intent_confidence: Optional[float] = None,
    window: Optional[int] = None,
) -> Conversation:
    """Append messages, keeping only the most recent `window` entries."""
    keep = window or settings.conversation_window

    def mutate(conversation: Conversation) -> None:
        # new list objects so the JSON column registers the change
        conversation.messages = (list(conversation.messages or []) + list(new_messages))[-keep:]
        conversation.last_message_at = _now()
        if latest_intent:
            conversation.last_intent = latest_intent
            conversation.last_intent_confidence = intent_confidence
        if context_updates:
            conversation.context = {**(conversation.context or {}), **context_updates}

    return _update_with_retry(db, tenant_id, conversation_id, mutate)


def mark_human_handled(
    db: Session,
    tenant_id: UUID,
    conversation_id: Union[str, UUID],
    text: str,
    window: Optional[int] = None,
) -> Conversation:
    """Record a staff reply and hand the conversation to a human. Status is unchanged."""
    keep = window or settings.conversation_window
    message = build_message("model", text, author=HandledBy.HUMAN.value)

    def mutate(conversation: Conversation) -> None:
        conversation.messages = (list(conversation.messages or []) + [message])[-keep:]
        conversation.last_message_at = _now()
        conversation.handled_by = HandledBy.HUMAN.value

    conversation = _update_with_retry(db, tenant_id, conversation_id, mutate)
    logger.info("Human takeover", extra={"context": {"conversation_id": str(conversation_id)}})
    return conversation


def hand_back_to_ai(db: Session, tenant_id: UUID, conversation_id: Union[str, UUID]) -> Conversation:
    def mutate(conversation: Conversation) -> None:
        conversation.handled_by = HandledBy.AI.value

    return _update_with_retry(db, tenant_id, conversation_id, mutate)


def update_conversation_status(
    db: Session,
    tenant_id: UUID,
    conversation_id: Union[str, UUID],
    new_status: ConversationStatus,
) -> Conversation:
    """Change status through the transition table.

    Raises:
        InvalidTransitionError: move not allowed (e.g. out of resolved)
        ActiveConversationExistsError: reactivating while the customer already has a newer active conversation
    """
    target = ConversationStatus(new_status)

    def mutate(conversation: Conversation) -> None:
        current = ConversationStatus(conversation.status)
        conversation.status = transition(current, target).value
        if target == ConversationStatus.RESOLVED:
            conversation.resolved_at = _now()

    try:
        conversation = _update_with_retry(db, tenant_id, conversation_id, mutate)
    except IntegrityError:
        db.rollback()
        raise ActiveConversationExistsError(conversation_id)
    logger.info(
        f"Conversation status -> {target.value}",
        extra={"context": {"conversation_id": str(conversation_id)}},
    )
    return conversation
