import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Text, Uuid, text
from sqlalchemy.orm import relationship

from jawab.database import Base
from jawab.models.tenant import JSONType


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(Text, nullable=False)  # phone (no whatsapp: prefix) or platform user id
    customer_name = Column(Text)
    channel = Column(Text, nullable=False)  # whatsapp, voice, messenger, instagram_dm, *_comment
    status = Column(Text, nullable=False, default="active")  # active, resolved, escalated
    handled_by = Column(Text, nullable=False, default="ai")  # ai, human
    messages = Column(JSONType, nullable=False, default=list)  # [{role, content, timestamp, author}]
    last_intent = Column(Text)
    last_intent_confidence = Column(Float)
    context = Column(JSONType, nullable=False, default=dict)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_message_at = Column(DateTime(timezone=True))
    resolved_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)

    tenant = relationship("Tenant", back_populates="conversations")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_conversations_active_customer",
            "tenant_id",
            "customer_id",
            "channel",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
