"""Conversation module."""

from .registry import ConversationRegistry

__all__ = ["ConversationRegistry"]
