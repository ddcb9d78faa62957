from jawab.services.conversation_service import (
    append_messages,
    get_or_create_conversation,
    history_for_model,
    mark_human_handled,
)
from jawab.services.message_service import TurnOutcome, handle_inbound_turn
from jawab.services.state_machine import (
    ConversationStatus,
    HandledBy,
    InvalidTransitionError,
    can_transition,
)

__all__ = [
    "get_or_create_conversation",
    "append_messages",
    "history_for_model",
    "mark_human_handled",
    "handle_inbound_turn",
    "TurnOutcome",
    "ConversationStatus",
    "HandledBy",
    "InvalidTransitionError",
    "can_transition",
]
