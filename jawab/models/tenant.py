import uuid

from sqlalchemy import JSON, Column, DateTime, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from jawab.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    name_ar = Column(Text)
    industry = Column(Text)
    location = Column(Text)
    address = Column(Text)
    google_maps_link = Column(Text)
    parking_info = Column(Text)
    timezone = Column(Text)
    services = Column(JSONType, nullable=False, default=list)  # [{name, name_ar, price, duration, currency}]
    hours = Column(JSONType, nullable=False, default=dict)  # {"monday": {"open", "close"} | None}
    custom_faqs = Column(JSONType, nullable=False, default=list)  # [{question, answer}]
    tone = Column(Text, nullable=False, default="friendly")  # friendly, professional, casual
    default_language = Column(Text, nullable=False, default="auto")  # ar, en, auto

    whatsapp_number = Column(Text, index=True)
    whatsapp_number_sid = Column(Text)
    phone_number = Column(Text, index=True)
    phone_number_sid = Column(Text)
    meta_page_id = Column(Text, index=True)
    meta_page_name = Column(Text)
    meta_instagram_account_id = Column(Text, index=True)
    meta_access_token = Column(Text)
    google_calendar = Column(JSONType)
    config = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    conversations = relationship("Conversation", back_populates="tenant")

    @property
    def legacy_whatsapp_number(self):
        """Legacy: flat whatsapp_number kept in config. Use whatsapp_number instead."""
        return self.config.get("whatsapp_number") if self.config else None

    @property
    def legacy_phone_number(self):
        """Legacy: flat phone_number kept in config. Use phone_number instead."""
        return self.config.get("phone_number") if self.config else None
