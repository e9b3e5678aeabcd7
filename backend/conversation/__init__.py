"""
Conversation Module
对话模块

Conversation persistence and the chat HTTP endpoints.
"""

from .conversation_store import (
    ConversationStore,
    Conversation,
    ConversationMessage,
    conversation_store,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)

__all__ = [
    "ConversationStore",
    "Conversation",
    "ConversationMessage",
    "conversation_store",
    "STATUS_PENDING",
    "STATUS_PROCESSING",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
]
