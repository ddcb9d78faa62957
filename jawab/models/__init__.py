from jawab.models.conversation import Conversation
from jawab.models.tenant import Tenant

__all__ = [
    "Tenant",
    "Conversation",
]
