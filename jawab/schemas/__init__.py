from jawab.schemas.admin import MetaBind, NumberAssign, NumberRemove, TenantCreate, TenantResponse, TenantUpdate
from jawab.schemas.conversation import ConversationResponse, HumanReplyRequest, StatusUpdateRequest
from jawab.schemas.inbound import InboundMessage, MetaComment, MetaDirectMessage, VoiceInbound, WhatsAppInbound

__all__ = [
    "TenantCreate",
    "TenantUpdate",
    "TenantResponse",
    "NumberAssign",
    "NumberRemove",
    "MetaBind",
    "ConversationResponse",
    "HumanReplyRequest",
    "StatusUpdateRequest",
    "InboundMessage",
    "WhatsAppInbound",
    "VoiceInbound",
    "MetaDirectMessage",
    "MetaComment",
]
