"""Meta Graph API client (Messenger, Instagram DMs, comments) and webhook parsing."""

from datetime import datetime, timezone
from typing import List, Optional, Union

import httpx

from jawab.logging_config import get_logger
from jawab.schemas.inbound import MetaComment, MetaDirectMessage
from jawab.services.alert_service import alert_warning
from jawab.services.result import Result

logger = get_logger("meta_service")

GRAPH_API_HOST = "https://graph.facebook.com"
COMMENT_FIELDS = {"comments", "feed"}

MetaInbound = Union[MetaDirectMessage, MetaComment]


class MetaGraphClient:
    def __init__(
        self,
        access_token: Optional[str],
        instagram_account_id: Optional[str] = None,
        api_version: str = "v18.0",
        verify_token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.access_token = access_token
        self.instagram_account_id = instagram_account_id
        self.verify_token = verify_token
        self.timeout = timeout
        self.base_url = f"{GRAPH_API_HOST}/{api_version}"

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)

    def verify_webhook(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> Optional[str]:
        """Return the challenge to echo, or None when verification fails."""
        if mode == "subscribe" and self.verify_token and token == self.verify_token:
            logger.info("Meta webhook verified")
            return challenge or ""
        logger.warning("Meta webhook verification failed", extra={"context": {"mode": mode}})
        return None

    def _post(self, path: str, payload: dict, token: str) -> httpx.Response:
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(
                f"{self.base_url}/{path}",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                json=payload,
            )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        return (data.get("error") or {}).get("message") or f"HTTP {response.status_code}"

    def send_direct_message(
        self,
        recipient_id: str,
        text: str,
        platform: str = "messenger",
        access_token: Optional[str] = None,
        instagram_account_id: Optional[str] = None,
    ) -> Result[str]:
        """Send a Messenger or Instagram DM. Returns the message id."""
        token = access_token or self.access_token
        if not token:
            return Result.failure("Meta access token not configured", "not_configured")

        if platform == "instagram_dm":
            account_id = instagram_account_id or self.instagram_account_id
            if not account_id:
                return Result.failure("Instagram account id not configured", "not_configured")
            path = f"{account_id}/messages"
        else:
            path = "me/messages"

        payload = {
            "recipient": {"id": recipient_id},
            "message": {"text": text},
            "messaging_type": "RESPONSE",
        }
        try:
            response = self._post(path, payload, token)
        except httpx.HTTPError as e:
            logger.error(f"Meta DM failed: {e}", extra={"context": {"recipient": recipient_id, "platform": platform}})
            return Result.failure(str(e), "send_failed")

        if response.status_code != 200:
            error = self._error_message(response)
            logger.error(f"Meta DM rejected: {error}", extra={"context": {"recipient": recipient_id, "platform": platform}})
            alert_warning("Meta DM send failed", {"platform": platform, "error": error})
            return Result.failure(error, "send_failed")

        logger.info(f"Meta DM sent to {recipient_id} via {platform}")
        return Result.success(response.json().get("message_id"))

    def reply_to_comment(self, comment_id: str, text: str, access_token: Optional[str] = None) -> Result[str]:
        """Post a public reply under a comment. Returns the new comment id."""
        token = access_token or self.access_token
        if not token:
            return Result.failure("Meta access token not configured", "not_configured")

        try:
            response = self._post(f"{comment_id}/replies", {"message": text}, token)
        except httpx.HTTPError as e:
            logger.error(f"Meta comment reply failed: {e}", extra={"context": {"comment_id": comment_id}})
            return Result.failure(str(e), "send_failed")

        if response.status_code != 200:
            error = self._error_message(response)
            logger.error(f"Meta comment reply rejected: {error}", extra={"context": {"comment_id": comment_id}})
            alert_warning("Meta comment reply failed", {"comment_id": comment_id, "error": error})
            return Result.failure(error, "send_failed")

        logger.info(f"Replied to comment {comment_id}")
        return Result.success(response.json().get("id"))

    def send_typing_indicator(self, recipient_id: str, action: str = "typing_on", access_token: Optional[str] = None) -> None:
        """Best effort. Failures are logged only."""
        token = access_token or self.access_token
        if not token:
            return
        payload = {"recipient": {"id": recipient_id}, "sender_action": action}
        try:
            self._post("me/messages", payload, token)
        except httpx.HTTPError as e:
            logger.warning(f"Typing indicator failed: {e}")

    def get_user_profile(self, user_id: str, access_token: Optional[str] = None) -> Optional[dict]:
        token = access_token or self.access_token
        if not token:
            return None
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(
                    f"{self.base_url}/{user_id}",
                    params={"fields": "name,profile_pic", "access_token": token},
                )
        except httpx.HTTPError as e:
            logger.warning(f"Profile fetch failed: {e}")
            return None
        if response.status_code != 200:
            return None
        data = response.json()
        return {"name": data.get("name"), "profile_pic": data.get("profile_pic")}


def _from_millis(value) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def _from_seconds(value) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def parse_webhook_payload(object_type: Optional[str], entries: List[dict]) -> List[MetaInbound]:
    """Flatten a Meta webhook envelope into DMs and new comments.

    Echoes of our own sends, non-text messages, edits and deletions are skipped.
    """
    is_instagram = object_type == "instagram"
    parsed: List[MetaInbound] = []

    for entry in entries or []:
        account_id = str(entry.get("id") or "")

        for event in entry.get("messaging") or []:
            message = event.get("message") or {}
            if message.get("is_echo") or not message.get("text"):
                continue
            sender_id = (event.get("sender") or {}).get("id")
            if not sender_id:
                continue
            parsed.append(
                MetaDirectMessage(
                    account_id=account_id,
                    platform="instagram_dm" if is_instagram else "messenger",
                    sender_id=str(sender_id),
                    message_id=message.get("mid"),
                    text=message["text"],
                    timestamp=_from_millis(event.get("timestamp")),
                    attachments=[
                        {"type": a.get("type"), "url": (a.get("payload") or {}).get("url")}
                        for a in message.get("attachments") or []
                    ],
                )
            )

        for change in entry.get("changes") or []:
            if change.get("field") not in COMMENT_FIELDS:
                continue
            value = change.get("value") or {}
            if value.get("verb") != "add" or value.get("item") != "comment" or not value.get("message"):
                continue
            sender = value.get("from") or {}
            if not sender.get("id"):
                continue
            parsed.append(
                MetaComment(
                    account_id=account_id,
                    platform="instagram_comment" if is_instagram else "facebook_comment",
                    sender_id=str(sender["id"]),
                    sender_name=sender.get("name"),
                    text=value["message"],
                    post_id=value.get("post_id"),
                    comment_id=value.get("comment_id"),
                    parent_comment_id=value.get("parent_id"),
                    timestamp=_from_seconds(value.get("created_time")),
                )
            )

    return parsed
