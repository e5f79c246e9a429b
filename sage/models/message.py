"""Message model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID

# Phase marker written on messages saved from a buffered voice transcript
VOICE_PHASE = "voice"


class MessageRole(str, Enum):
    """Message role values matching database enum."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(TypedDict):
    """Message table row representation.

    Messages are immutable; insertion order is the transcript order.
    """

    id: UUID
    conversation_id: UUID
    role: MessageRole
    content: str
    phase: str | None
    tokens_used: int
    created_at: datetime


class MessageCreate(TypedDict, total=False):
    """Data required to create a new message."""

    conversation_id: UUID
    role: MessageRole
    content: str
    phase: str | None
    tokens_used: int
