from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jawab.config import settings
from jawab.database import get_db
from jawab.dependencies import get_llm, get_messenger, require_admin_token
from jawab.logging_config import get_logger
from jawab.schemas.admin import WhatsAppSendRequest
from jawab.services.alert_service import alert_critical
from jawab.services.llm import LLMProvider
from jawab.services.message_service import handle_inbound_turn
from jawab.services.prompt_service import ChannelHint
from jawab.services.tenant_service import resolve_tenant_for_whatsapp
from jawab.services.twilio_service import (
    APOLOGY_REPLY,
    NOT_CONFIGURED_REPLY,
    TwilioMessenger,
    build_message_twiml,
    parse_whatsapp_form,
    validate_signature,
)

logger = get_logger("whatsapp_webhook")

router = APIRouter()


def _twiml(content: str) -> Response:
    return Response(content=content, media_type="text/xml")


def _signed_url(request: Request) -> str:
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{request.url.path}"
    return str(request.url)


@router.post("/api/webhooks/whatsapp")
async def whatsapp_webhook(
    request: Request,
    db: Session = Depends(get_db),
    llm: LLMProvider = Depends(get_llm),
):
    """
    Twilio inbound WhatsApp message.

    Always answers in TwiML, except for malformed (400) or unsigned (403) requests.
    """
    try:
        form = {key: str(value) for key, value in (await request.form()).items()}

        if settings.twilio_validate_signature:
            signature = request.headers.get("X-Twilio-Signature")
            if not validate_signature(settings.twilio_auth_token, _signed_url(request), form, signature):
                logger.warning("Rejected WhatsApp webhook with bad signature")
                return JSONResponse(status_code=403, content={"error": "Invalid signature"})

        inbound = parse_whatsapp_form(form)
        if inbound is None:
            return JSONResponse(status_code=400, content={"error": "Missing required fields"})

        logger.info(
            "WhatsApp message received",
            extra={"context": {"from": inbound.from_number, "to": inbound.to_number, "sid": inbound.message_sid}},
        )

        resolution = resolve_tenant_for_whatsapp(db, inbound.to_number)
        if resolution is None:
            return _twiml(build_message_twiml(NOT_CONFIGURED_REPLY))

        context_updates = {"last_message_sid": inbound.message_sid} if inbound.message_sid else None
        if inbound.media_urls:
            context_updates = {**(context_updates or {}), "last_media_urls": inbound.media_urls}

        outcome = handle_inbound_turn(
            db,
            llm,
            resolution.tenant,
            customer_id=inbound.from_number,
            channel="whatsapp",
            user_text=inbound.body,
            channel_hint=ChannelHint.WHATSAPP,
            display_name=inbound.profile_name,
            context_updates=context_updates,
        )
        return _twiml(build_message_twiml(outcome.reply))

    except Exception as e:
        logger.error(f"WhatsApp webhook error: {e}", exc_info=True)
        alert_critical("WhatsApp webhook crashed", {"error": str(e)[:200]})
        return _twiml(build_message_twiml(APOLOGY_REPLY))


@router.get("/api/webhooks/whatsapp")
async def whatsapp_webhook_status(messenger: TwilioMessenger = Depends(get_messenger)):
    return {
        "status": "WhatsApp webhook is active",
        "twilio": "configured" if messenger.is_configured else "not configured",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/api/whatsapp/send", dependencies=[Depends(require_admin_token)])
def send_whatsapp(data: WhatsAppSendRequest, messenger: TwilioMessenger = Depends(get_messenger)):
    if not messenger.is_configured:
        raise HTTPException(status_code=503, detail="Twilio not configured")

    result = messenger.send_whatsapp(data.to, data.body, from_number=data.from_number, media_urls=data.media_urls)
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error)
    return result.to_dict()
