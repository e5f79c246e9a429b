"""Conversation model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class DialoguePhase(str, Enum):
    """Ordered phases of a Socratic dialogue's questioning arc.

    Orthogonal to the lifecycle pipeline: the pipeline never reads or
    changes the phase.
    """

    OPENING = "opening"
    EXPLORING = "exploring"
    EXAMINING = "examining"
    CHALLENGING = "challenging"
    EXPANDING = "expanding"
    SYNTHESIZING = "synthesizing"
    CONCLUDING = "concluding"


class ConversationType(str, Enum):
    """Modality a conversation was held in."""

    VOICE = "voice"
    TEXT = "text"


class Conversation(TypedDict):
    """Conversation table row representation.

    At most one conversation per user has is_active=true; summary stays
    null until the lifecycle pipeline's summarization step has completed.
    """

    id: UUID
    user_id: UUID
    title: str
    summary: str | None
    phase: DialoguePhase
    is_active: bool
    created_at: datetime
    updated_at: datetime

