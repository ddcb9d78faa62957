from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from jawab.database import get_db
from jawab.dependencies import get_llm, get_meta_client, require_admin_token
from jawab.logging_config import get_logger
from jawab.schemas.admin import MetaSendRequest
from jawab.services.alert_service import alert_critical
from jawab.services.llm import LLMProvider
from jawab.services.message_service import handle_inbound_turn
from jawab.services.meta_service import MetaGraphClient, MetaInbound, parse_webhook_payload
from jawab.services.prompt_service import ChannelHint
from jawab.services.tenant_service import resolve_tenant_for_meta
from jawab.services.twilio_service import NOT_CONFIGURED_REPLY

logger = get_logger("meta_webhook")

router = APIRouter()


def _dm_display_name(meta: MetaGraphClient, message: MetaInbound, token: Optional[str]) -> Optional[str]:
    profile = meta.get_user_profile(message.sender_id, access_token=token)
    return (profile or {}).get("name") or None


def process_meta_message(db: Session, llm: LLMProvider, meta: MetaGraphClient, message: MetaInbound) -> None:
    """Answer one DM or comment on the channel it came from."""
    resolution = resolve_tenant_for_meta(db, message.account_id)
    if resolution is None:
        if message.is_public:
            logger.warning("No tenant for comment, skipping", extra={"context": {"account_id": message.account_id}})
        else:
            meta.send_direct_message(message.sender_id, NOT_CONFIGURED_REPLY, message.platform)
        return

    tenant = resolution.tenant
    token = tenant.meta_access_token

    if message.is_public:
        outcome = handle_inbound_turn(
            db,
            llm,
            tenant,
            customer_id=message.sender_id,
            channel=message.platform,
            user_text=message.text,
            channel_hint=ChannelHint.PUBLIC_COMMENT,
            display_name=message.sender_name,
            context_updates={"post_id": message.post_id, "comment_id": message.comment_id, "is_public": True},
        )
        if outcome.reply and message.comment_id:
            meta.reply_to_comment(message.comment_id, outcome.reply, access_token=token)
        return

    meta.send_typing_indicator(message.sender_id, "typing_on", access_token=token)
    try:
        outcome = handle_inbound_turn(
            db,
            llm,
            tenant,
            customer_id=message.sender_id,
            channel=message.platform,
            user_text=message.text,
            channel_hint=ChannelHint.PRIVATE_DM,
            display_name=_dm_display_name(meta, message, token),
            context_updates={"is_public": False},
        )
        if outcome.reply:
            meta.send_direct_message(
                message.sender_id,
                outcome.reply,
                message.platform,
                access_token=token,
                instagram_account_id=tenant.meta_instagram_account_id,
            )
    finally:
        meta.send_typing_indicator(message.sender_id, "typing_off", access_token=token)


@router.get("/api/webhooks/meta")
async def verify_meta_webhook(request: Request, meta: MetaGraphClient = Depends(get_meta_client)):
    params = request.query_params
    challenge = meta.verify_webhook(params.get("hub.mode"), params.get("hub.verify_token"), params.get("hub.challenge"))
    if challenge is None:
        return JSONResponse(status_code=403, content={"error": "Verification failed"})
    return PlainTextResponse(challenge)


@router.post("/api/webhooks/meta")
async def meta_webhook(
    request: Request,
    db: Session = Depends(get_db),
    llm: LLMProvider = Depends(get_llm),
    meta: MetaGraphClient = Depends(get_meta_client),
):
    """
    Messenger / Instagram webhook.

    Always 200 so Meta does not retry: per-message failures are logged and skipped.
    """
    try:
        payload = await request.json()
        object_type = payload.get("object")
        entries = payload.get("entry") or []
        logger.info(f"Meta webhook: {object_type} with {len(entries)} entries")

        if not entries:
            return {"status": "no_entries"}

        for entry in entries:
            for message in parse_webhook_payload(object_type, [entry]):
                try:
                    process_meta_message(db, llm, meta, message)
                except Exception as e:
                    db.rollback()
                    logger.error(
                        f"Meta message failed: {e}",
                        exc_info=True,
                        extra={"context": {"sender_id": message.sender_id, "platform": message.platform}},
                    )

        return {"status": "ok"}

    except Exception as e:
        logger.error(f"Meta webhook error: {e}", exc_info=True)
        alert_critical("Meta webhook crashed", {"error": str(e)[:200]})
        return {"status": "error"}


@router.post("/api/meta/send", dependencies=[Depends(require_admin_token)])
def send_meta_message(data: MetaSendRequest, meta: MetaGraphClient = Depends(get_meta_client)):
    if not meta.is_configured:
        raise HTTPException(status_code=503, detail="Meta not configured")

    if data.comment_id:
        result = meta.reply_to_comment(data.comment_id, data.message)
    elif data.recipient_id:
        result = meta.send_direct_message(data.recipient_id, data.message, data.platform)
    else:
        raise HTTPException(status_code=400, detail="recipient_id or comment_id is required")

    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error)
    return result.to_dict()
