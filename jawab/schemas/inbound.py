from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class WhatsAppInbound(BaseModel):
    kind: Literal["whatsapp"] = "whatsapp"
    from_number: str  # bare E.164, no whatsapp: prefix
    to_number: str
    body: str
    profile_name: Optional[str] = None
    message_sid: Optional[str] = None
    media_urls: List[str] = Field(default_factory=list)


class VoiceInbound(BaseModel):
    kind: Literal["voice"] = "voice"
    call_sid: str
    from_number: str = ""
    to_number: str = ""
    call_status: Optional[str] = None
    speech_result: Optional[str] = None
    digits: Optional[str] = None

    @property
    def is_new_call(self) -> bool:
        return not self.speech_result and not self.digits

    @property
    def user_text(self) -> str:
        if self.speech_result:
            return self.speech_result
        if self.digits:
            return f"Pressed {self.digits}"
        return ""


class MetaDirectMessage(BaseModel):
    kind: Literal["meta_dm"] = "meta_dm"
    account_id: str  # page or Instagram account the message was sent to
    platform: Literal["messenger", "instagram_dm"]
    sender_id: str
    message_id: Optional[str] = None
    text: str
    timestamp: Optional[datetime] = None
    attachments: List[dict] = Field(default_factory=list)

    @property
    def is_public(self) -> bool:
        return False


class MetaComment(BaseModel):
    kind: Literal["meta_comment"] = "meta_comment"
    account_id: str
    platform: Literal["instagram_comment", "facebook_comment"]
    sender_id: str
    sender_name: Optional[str] = None
    text: str
    post_id: Optional[str] = None
    comment_id: Optional[str] = None
    parent_comment_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def is_public(self) -> bool:
        return True


InboundMessage = Annotated[
    Union[WhatsAppInbound, VoiceInbound, MetaDirectMessage, MetaComment],
    Field(discriminator="kind"),
]
