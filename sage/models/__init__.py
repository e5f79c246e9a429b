"""Database model type definitions."""

from sage.models.conversation import Conversation, ConversationType, DialoguePhase
from sage.models.insight import ConversationInsight, InsightType, UserInsight, UserInsightCategory
from sage.models.lifecycle import LifecycleRun, LifecycleStep, RunStatus
from sage.models.message import Message, MessageRole
from sage.models.profile import Profile
from sage.models.usage import UsageRecord, UsageType

__all__ = [
    "Conversation",
    "ConversationType",
    "DialoguePhase",
    "ConversationInsight",
    "InsightType",
    "UserInsight",
    "UserInsightCategory",
    "LifecycleRun",
    "LifecycleStep",
    "RunStatus",
    "Message",
    "MessageRole",
    "Profile",
    "UsageRecord",
    "UsageType",
]
