"""Twilio WhatsApp messaging: outbound sends, inbound parsing, TwiML replies."""

from typing import List, Mapping, Optional

from twilio.base.exceptions import TwilioException
from twilio.request_validator import RequestValidator
from twilio.rest import Client
from twilio.twiml.messaging_response import MessagingResponse

from jawab.logging_config import get_logger
from jawab.schemas.inbound import WhatsAppInbound
from jawab.services.alert_service import alert_warning
from jawab.services.result import Result
from jawab.services.tenant_service import WHATSAPP_PREFIX, strip_whatsapp_prefix

logger = get_logger("twilio_service")

NOT_CONFIGURED_REPLY = "I'm sorry, we're not set up yet. Please try again later."
APOLOGY_REPLY = "I'm sorry, I'm having a moment. Please try again! 🙏"


def format_whatsapp_address(number: str) -> str:
    """`+971...` / `whatsapp:+971...` / `971...` -> `whatsapp:+971...`"""
    cleaned = strip_whatsapp_prefix(number)
    if cleaned and not cleaned.startswith("+"):
        cleaned = f"+{cleaned}"
    return f"{WHATSAPP_PREFIX}{cleaned}"


class TwilioMessenger:
    """Outbound WhatsApp sends through the Twilio REST client."""

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], whatsapp_number: Optional[str] = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.whatsapp_number = whatsapp_number
        self._client: Optional[Client] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send_whatsapp(
        self,
        to: str,
        body: str,
        from_number: Optional[str] = None,
        media_urls: Optional[List[str]] = None,
    ) -> Result[str]:
        """Send a WhatsApp message. Returns the message SID on success."""
        if not self.is_configured:
            return Result.failure("Twilio credentials not configured", "not_configured")

        sender = from_number or self.whatsapp_number
        if not sender:
            return Result.failure("No WhatsApp sender number configured", "no_sender")

        params = {
            "from_": format_whatsapp_address(sender),
            "to": format_whatsapp_address(to),
            "body": body,
        }
        if media_urls:
            params["media_url"] = media_urls

        try:
            message = self.client.messages.create(**params)
        except (TwilioException, OSError) as e:
            logger.error(f"WhatsApp send failed: {e}", extra={"context": {"to": params["to"]}})
            alert_warning("WhatsApp send failed", {"to": params["to"], "error": str(e)[:200]})
            return Result.failure(str(e), "send_failed")

        logger.info(f"WhatsApp message sent: {message.sid}", extra={"context": {"to": params["to"]}})
        return Result.success(message.sid)


def parse_whatsapp_form(form: Mapping[str, str]) -> Optional[WhatsAppInbound]:
    """Normalize Twilio's inbound webhook form. None when From or Body is missing."""
    from_number = strip_whatsapp_prefix(form.get("From"))
    body = (form.get("Body") or "").strip()
    if not from_number or not body:
        return None

    try:
        num_media = int(form.get("NumMedia") or 0)
    except ValueError:
        num_media = 0
    media_urls = [form[f"MediaUrl{i}"] for i in range(num_media) if form.get(f"MediaUrl{i}")]

    return WhatsAppInbound(
        from_number=from_number,
        to_number=strip_whatsapp_prefix(form.get("To")),
        body=body,
        profile_name=form.get("ProfileName") or None,
        message_sid=form.get("MessageSid") or None,
        media_urls=media_urls,
    )


def build_message_twiml(text: Optional[str]) -> str:
    """TwiML reply. No text gives an empty <Response/> (nothing is sent)."""
    response = MessagingResponse()
    if text:
        response.message(text)
    return str(response)


def validate_signature(auth_token: Optional[str], url: str, params: Mapping[str, str], signature: Optional[str]) -> bool:
    if not auth_token or not signature:
        return False
    return RequestValidator(auth_token).validate(url, dict(params), signature)
