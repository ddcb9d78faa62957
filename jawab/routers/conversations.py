from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from jawab.database import get_db
from jawab.dependencies import get_messenger, get_meta_client, require_admin_token
from jawab.logging_config import get_logger
from jawab.models import Conversation, Tenant
from jawab.schemas.conversation import (
    ConversationResponse,
    HumanReplyRequest,
    HumanReplyResponse,
    StatusUpdateRequest,
)
from jawab.services.conversation_service import (
    ActiveConversationExistsError,
    ConversationNotFoundError,
    get_conversation,
    hand_back_to_ai,
    mark_human_handled,
    update_conversation_status,
)
from jawab.services.meta_service import MetaGraphClient
from jawab.services.result import Result
from jawab.services.state_machine import InvalidTransitionError
from jawab.services.tenant_service import get_tenant
from jawab.services.twilio_service import TwilioMessenger

logger = get_logger("conversations")

router = APIRouter(prefix="/conversations", dependencies=[Depends(require_admin_token)])

DM_CHANNELS = {"messenger", "instagram_dm"}
COMMENT_CHANNELS = {"instagram_comment", "facebook_comment"}


def _load(db: Session, tenant_id: UUID, conversation_id: UUID) -> Conversation:
    conversation = get_conversation(db, tenant_id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def deliver_staff_reply(
    tenant: Tenant,
    conversation: Conversation,
    text: str,
    messenger: TwilioMessenger,
    meta: MetaGraphClient,
) -> Result[str]:
    """Send a staff reply over the conversation's own channel."""
    channel = conversation.channel
    if channel == "whatsapp":
        return messenger.send_whatsapp(conversation.customer_id, text, from_number=tenant.whatsapp_number)
    if channel in DM_CHANNELS:
        return meta.send_direct_message(
            conversation.customer_id,
            text,
            channel,
            access_token=tenant.meta_access_token,
            instagram_account_id=tenant.meta_instagram_account_id,
        )
    if channel in COMMENT_CHANNELS:
        comment_id = (conversation.context or {}).get("comment_id")
        if not comment_id:
            return Result.failure("No comment to reply to", "no_comment")
        return meta.reply_to_comment(comment_id, text, access_token=tenant.meta_access_token)
    return Result.failure(f"Channel {channel} does not support staff replies", "unsupported_channel")


@router.get("/{tenant_id}/{conversation_id}", response_model=ConversationResponse)
def read_conversation(tenant_id: UUID, conversation_id: UUID, db: Session = Depends(get_db)):
    return _load(db, tenant_id, conversation_id)


@router.post("/{tenant_id}/{conversation_id}/reply", response_model=HumanReplyResponse)
def reply_as_staff(
    tenant_id: UUID,
    conversation_id: UUID,
    data: HumanReplyRequest,
    db: Session = Depends(get_db),
    messenger: TwilioMessenger = Depends(get_messenger),
    meta: MetaGraphClient = Depends(get_meta_client),
):
    """Human takeover: record the staff reply, pause the AI, deliver over the channel."""
    conversation = _load(db, tenant_id, conversation_id)
    if conversation.channel == "voice":
        raise HTTPException(status_code=400, detail="Staff replies are not supported on voice calls")

    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")

    try:
        conversation = mark_human_handled(db, tenant_id, conversation_id, data.text)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    delivery = deliver_staff_reply(tenant, conversation, data.text, messenger, meta)
    logger.info(
        "Staff reply",
        extra={
            "context": {
                "tenant_id": str(tenant_id),
                "conversation_id": str(conversation_id),
                "channel": conversation.channel,
                "delivered": delivery.ok,
            }
        },
    )
    return HumanReplyResponse(
        success=delivery.ok,
        conversation=ConversationResponse.model_validate(conversation),
        delivery_id=delivery.value,
        error=delivery.error,
    )


@router.post("/{tenant_id}/{conversation_id}/handback", response_model=ConversationResponse)
def hand_back(tenant_id: UUID, conversation_id: UUID, db: Session = Depends(get_db)):
    _load(db, tenant_id, conversation_id)
    return hand_back_to_ai(db, tenant_id, conversation_id)


@router.post("/{tenant_id}/{conversation_id}/status", response_model=ConversationResponse)
def change_status(
    tenant_id: UUID,
    conversation_id: UUID,
    data: StatusUpdateRequest,
    db: Session = Depends(get_db),
):
    _load(db, tenant_id, conversation_id)
    try:
        return update_conversation_status(db, tenant_id, conversation_id, data.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ActiveConversationExistsError:
        raise HTTPException(status_code=409, detail="Customer already has another active conversation on this channel")
