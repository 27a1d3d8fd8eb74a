"""Import all models so Base.metadata sees every table."""
from crm_chat.infrastructure.db.models.chat import ChatModel
from crm_chat.infrastructure.db.models.message import MessageModel
from crm_chat.infrastructure.db.models.user import UserModel

__all__ = [
    "ChatModel",
    "MessageModel",
    "UserModel",
]
