"""Alert service for sending operational notifications to Telegram."""

from typing import Optional

import httpx

from jawab.config import settings
from jawab.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to the operations chat.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict (tenant, channel, ids)

    Returns:
        True if sent successfully
    """
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    text = f"{LEVEL_EMOJI.get(level, '📢')} *{level}* [jawab]\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={"chat_id": settings.alert_chat_id, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return send_alert("ERROR", message, context)


def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for CRITICAL level alert."""
    return send_alert("CRITICAL", message, context)


def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for WARNING level alert."""
    return send_alert("WARNING", message, context)
