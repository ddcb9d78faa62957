from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServiceItem(BaseModel):
    name: str
    name_ar: Optional[str] = None
    price: float
    duration: Optional[int] = None
    currency: Optional[str] = None


class HoursSlot(BaseModel):
    open: str
    close: str


class FaqItem(BaseModel):
    question: str
    answer: str


class TenantCreate(BaseModel):
    name: str
    name_ar: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    google_maps_link: Optional[str] = None
    parking_info: Optional[str] = None
    timezone: Optional[str] = None
    services: List[ServiceItem] = Field(default_factory=list)
    hours: Dict[str, Optional[HoursSlot]] = Field(default_factory=dict)
    custom_faqs: List[FaqItem] = Field(default_factory=list)
    tone: Literal["friendly", "professional", "casual"] = "friendly"
    default_language: Literal["ar", "en", "auto"] = "auto"
    config: Dict[str, str] = Field(default_factory=dict)


class TenantUpdate(BaseModel):
    name: Optional[str] = None
    name_ar: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    google_maps_link: Optional[str] = None
    parking_info: Optional[str] = None
    timezone: Optional[str] = None
    services: Optional[List[ServiceItem]] = None
    hours: Optional[Dict[str, Optional[HoursSlot]]] = None
    custom_faqs: Optional[List[FaqItem]] = None
    tone: Optional[Literal["friendly", "professional", "casual"]] = None
    default_language: Optional[Literal["ar", "en", "auto"]] = None

    @field_validator("name", "services", "hours", "custom_faqs", "tone", "default_language")
    @classmethod
    def reject_null(cls, value):
        # omit a field to leave it unchanged; these columns are NOT NULL
        if value is None:
            raise ValueError("may not be null")
        return value


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    name_ar: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    timezone: Optional[str] = None
    services: List[dict] = Field(default_factory=list)
    hours: dict = Field(default_factory=dict)
    custom_faqs: List[dict] = Field(default_factory=list)
    tone: str
    default_language: str
    whatsapp_number: Optional[str] = None
    phone_number: Optional[str] = None
    meta_page_id: Optional[str] = None
    meta_page_name: Optional[str] = None
    meta_instagram_account_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class NumberAssign(BaseModel):
    tenant_id: UUID
    type: Literal["whatsapp", "phone"]
    number: str
    sid: Optional[str] = None


class NumberRemove(BaseModel):
    tenant_id: UUID
    type: Literal["whatsapp", "phone"]


class MetaBind(BaseModel):
    page_id: Optional[str] = None
    page_name: Optional[str] = None
    instagram_account_id: Optional[str] = None
    access_token: Optional[str] = None


class WhatsAppSendRequest(BaseModel):
    to: str
    body: str
    from_number: Optional[str] = None
    media_urls: Optional[List[str]] = None


class MetaSendRequest(BaseModel):
    recipient_id: Optional[str] = None
    message: str
    platform: Literal["messenger", "instagram_dm"] = "messenger"
    comment_id: Optional[str] = None
