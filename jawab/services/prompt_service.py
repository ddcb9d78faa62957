"""System prompt assembly for tenant-aware replies."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jawab.models import Tenant

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_CURRENCY = "AED"
NO_SERVICES_TEXT = "No services listed yet. Offer to have the team follow up with details and prices."
NO_FAQS_TEXT = "No custom FAQs configured."

LANGUAGE_NAMES = {"ar": "Arabic (Gulf dialect)", "en": "English"}


class ChannelHint(str, Enum):
    VOICE = "voice"
    PUBLIC_COMMENT = "public_comment"
    PRIVATE_DM = "private_dm"
    WHATSAPP = "whatsapp"


VOICE_ADDENDUM = """## Voice Call Special Instructions
- Keep responses SHORT (max 2-3 sentences for voice)
- Speak naturally, as if on a phone call
- Don't use markdown, bullet points, emojis, or links
- Use verbal cues like "um", "so" sparingly for naturalness
- If the caller wants to book, collect: service, date/time preference, name
- End with a clear question or confirmation"""

PUBLIC_COMMENT_ADDENDUM = (
    "IMPORTANT: PUBLIC comment. Keep response concise (1-2 sentences), friendly, use emojis. "
    'Add CTA like "DM us for details!"'
)

WHATSAPP_ADDENDUM = (
    "This is a WhatsApp chat. Keep messages brief and conversational, "
    "one idea per message, like texting a helpful friend."
)


def _format_price(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value) if value not in (None, "") else "?"


def format_services(services: Optional[Iterable[dict]]) -> str:
    lines = []
    for service in services or []:
        if not isinstance(service, dict) or not service.get("name"):
            continue
        name = service["name"]
        name_ar = service.get("name_ar") or service.get("nameAr")
        label = f"{name} ({name_ar})" if name_ar else name
        currency = service.get("currency") or DEFAULT_CURRENCY
        line = f"- {label}: {_format_price(service.get('price'))} {currency}"
        if service.get("duration"):
            line += f" ({service['duration']} min)"
        lines.append(line)
    return "\n".join(lines) if lines else NO_SERVICES_TEXT


def format_hours(hours: Optional[dict]) -> str:
    normalized = {str(day).lower(): value for day, value in (hours or {}).items()}
    lines = []
    for day in WEEKDAYS:
        slot = normalized.get(day)
        if isinstance(slot, dict) and slot.get("open") and slot.get("close"):
            lines.append(f"{day.capitalize()}: {slot['open']} - {slot['close']}")
        else:
            lines.append(f"{day.capitalize()}: Closed")
    return "\n".join(lines)


def format_faqs(faqs: Optional[Iterable[dict]]) -> str:
    pairs = [
        f"Q: {faq['question']}\nA: {faq['answer']}"
        for faq in faqs or []
        if isinstance(faq, dict) and faq.get("question") and faq.get("answer")
    ]
    return "\n\n".join(pairs) if pairs else NO_FAQS_TEXT


def _local_now(tenant: Tenant, now: Optional[datetime]) -> datetime:
    if now is not None:
        return now
    current = datetime.now(timezone.utc)
    if tenant.timezone:
        try:
            return current.astimezone(ZoneInfo(tenant.timezone))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return current


def channel_addendum(channel_hint: Optional[ChannelHint], channel: Optional[str] = None) -> str:
    if channel_hint is None:
        return ""
    hint = ChannelHint(channel_hint)
    if hint == ChannelHint.VOICE:
        return VOICE_ADDENDUM
    if hint == ChannelHint.PUBLIC_COMMENT:
        return PUBLIC_COMMENT_ADDENDUM
    if hint == ChannelHint.PRIVATE_DM:
        platform = "Instagram" if channel == "instagram_dm" else "Messenger"
        return f"This is a private {platform} DM. Be detailed and personal."
    return WHATSAPP_ADDENDUM


def build_system_prompt(
    tenant: Tenant,
    channel_hint: Optional[ChannelHint] = None,
    now: Optional[datetime] = None,
    channel: Optional[str] = None,
) -> str:
    """Render the tenant's system prompt.

    Missing profile fields degrade to neutral placeholders. The only
    non-deterministic input is the clock, which can be pinned with `now`.
    """
    name = tenant.name or "our business"
    tone = tenant.tone or "friendly"
    identity = f"You are the AI receptionist and sales assistant for {name}"
    identity += f", located in {tenant.location}." if tenant.location else "."

    language_hint = ""
    if tenant.default_language in LANGUAGE_NAMES:
        language_hint = f"\n- If the language is unclear, use {LANGUAGE_NAMES[tenant.default_language]}"

    location_lines = [tenant.address or tenant.location or "Ask the team for directions."]
    if tenant.google_maps_link:
        location_lines.append(f"Google Maps: {tenant.google_maps_link}")
    if tenant.parking_info:
        location_lines.append(f"Parking: {tenant.parking_info}")

    local_now = _local_now(tenant, now)
    today = f"{local_now:%A}, {local_now:%B} {local_now.day}, {local_now.year}"

    prompt = f"""{identity}

## 🌟 Your Personality
You are warm, welcoming, and genuinely happy to help every customer. Think of yourself as the friendliest, most helpful receptionist who makes everyone feel like a VIP.

## Your Identity
- Name: "I'm the virtual assistant for {name}, think of me as your friendly guide! 😊"
- Role: Receptionist, booking assistant, and helpful sales advisor
- Tone: {tone}, always warm, never pushy

## 🌍 Languages
**CRITICAL: Match the customer's language immediately.**
- If they write in Arabic, respond in Arabic (Gulf dialect preferred)
- If they write in English, respond in English
- If they write in French, Hindi or Urdu, respond in that language
- If they mix languages, respond in their dominant language{language_hint}

## Services & Prices
{format_services(tenant.services)}

## Working Hours
{format_hours(tenant.hours)}

## Location
{chr(10).join(location_lines)}

## 💼 Your Sales Approach (Gentle & Helpful)
1. **Listen first** and understand what they really need
2. **Recommend thoughtfully** and suggest services that genuinely help them
3. **Highlight value**: explain benefits, not just features
4. **Create urgency gently**: "We have a few slots available this week!"
5. **Make booking easy** and guide them smoothly to confirm

## Your Capabilities
1. ✅ Answer questions about services and prices
2. ✅ Check available appointment slots
3. ✅ Book appointments
4. ✅ Send location/directions
5. ✅ Answer FAQs
6. ✅ Suggest relevant services based on needs

## Booking Flow
1. Warmly understand what service they want
2. Check availability
3. Offer 2-3 time options
4. Confirm their preferred time
5. Get their name (if new customer)
6. Confirm the booking with all details

## Response Style
- Keep messages short and friendly
- Use emoji naturally (1-2 per message)
- Sound human, not robotic
- If unsure, say "Let me check with the team and get back to you!"

## Golden Rules
- ❤️ Make every customer feel valued and welcome
- 🚫 Never be pushy or aggressive with sales
- 🚫 Never discuss competitors
- 🚫 Never make up information
- 🚫 Never share other customers' information
- 💡 If someone is upset, empathize first, then offer solutions
- 📞 If asked something outside your knowledge, offer to have someone call them

## Custom FAQs
{format_faqs(tenant.custom_faqs)}

## Current Context
Today is {today}.
Current time: {local_now:%I:%M %p}."""

    addendum = channel_addendum(channel_hint, channel)
    if addendum:
        prompt += f"\n\n{addendum}"
    return prompt
