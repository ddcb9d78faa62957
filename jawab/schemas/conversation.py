from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from jawab.services.state_machine import ConversationStatus


class HumanReplyRequest(BaseModel):
    text: str


class StatusUpdateRequest(BaseModel):
    status: ConversationStatus


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    customer_id: str
    customer_name: Optional[str] = None
    channel: str
    status: str
    handled_by: str
    messages: List[dict]
    last_intent: Optional[str] = None
    last_intent_confidence: Optional[float] = None
    context: dict
    started_at: datetime
    last_message_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class HumanReplyResponse(BaseModel):
    success: bool
    conversation: ConversationResponse
    delivery_id: Optional[str] = None
    error: Optional[str] = None
