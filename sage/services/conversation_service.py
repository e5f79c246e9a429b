"""Conversation business logic service."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sage.core.supabase import get_supabase_client
from sage.models.conversation import DialoguePhase
from sage.models.message import VOICE_PHASE, MessageRole
from sage.schemas.conversation import ConversationCreate
from sage.schemas.lifecycle import TranscriptEntry
from sage.schemas.message import MessageCreate

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def title_from_text(text: str, max_length: int = 100) -> str:
    """Derive a conversation title from its opening text."""
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class ConversationService:
    """Service for managing conversations and messages.

    Every lookup is scoped to the owning user; callers pass the user id
    taken from the verified token (or from the lifecycle event).
    """

    DEFAULT_TITLE = "New conversation"
    DEFAULT_PAGE_SIZE = 50
    RECENT_SUMMARY_LIMIT = 5

    def __init__(self) -> None:
        """Initialize conversation service with Supabase client."""
        self.client = get_supabase_client()

    async def create_conversation(
        self,
        user_id: UUID,
        data: ConversationCreate | None = None,
    ) -> dict[str, Any]:
        """Start a new conversation and make it the user's only active one.

        The ``start_conversation`` database function deactivates the user's
        other conversations and inserts the new row in one transaction.

        Args:
            user_id: The conversation owner.
            data: Optional title or opening problem statement.

        Returns:
            dict: The created conversation row.
        """
        title = self.DEFAULT_TITLE
        if data and data.title:
            title = data.title
        elif data and data.problem_statement:
            title = title_from_text(data.problem_statement)

        response = self.client.rpc(
            "start_conversation",
            {"p_user_id": str(user_id), "p_title": title},
        ).execute()

        rows = response.data or []
        conversation = rows[0] if isinstance(rows, list) else rows
        logger.info("Started conversation %s for user %s", conversation["id"], user_id)
        return conversation

    async def get_conversation(
        self, conversation_id: UUID, user_id: UUID
    ) -> dict[str, Any] | None:
        """Get a conversation owned by a user.

        Returns:
            dict | None: The conversation row, or None when it does not exist
            or belongs to someone else.
        """
        response = (
            self.client.table("conversations")
            .select("*")
            .eq("id", str(conversation_id))
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_active_conversation(self, user_id: UUID) -> dict[str, Any] | None:
        """Get the user's active conversation, if any."""
        response = (
            self.client.table("conversations")
            .select("*")
            .eq("user_id", str(user_id))
            .eq("is_active", True)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )

        return response.data[0] if response.data else None

    async def list_conversations(
        self, user_id: UUID, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """List a user's conversations, most recently updated first.

        Each row carries a ``message_count`` taken from the embedded
        ``messages(count)`` aggregate.
        """
        response = (
            self.client.table("conversations")
            .select("*, messages(count)")
            .eq("user_id", str(user_id))
            .order("updated_at", desc=True)
            .limit(limit or self.DEFAULT_PAGE_SIZE)
            .execute()
        )

        conversations = []
        for row in response.data or []:
            nested = row.pop("messages", None) or []
            row["message_count"] = nested[0].get("count", 0) if nested else 0
            conversations.append(row)
        return conversations

    async def get_recent_summaries(
        self, user_id: UUID, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Get the user's most recently updated conversations that have a summary."""
        response = (
            self.client.table("conversations")
            .select("id, title, summary, updated_at")
            .eq("user_id", str(user_id))
            .not_.is_("summary", "null")
            .order("updated_at", desc=True)
            .limit(limit or self.RECENT_SUMMARY_LIMIT)
            .execute()
        )
        return response.data or []

    async def delete_conversation(self, conversation_id: UUID, user_id: UUID) -> bool:
        """Delete a conversation and, by cascade, its messages and insights.

        Returns:
            bool: True if a row was deleted.
        """
        response = (
            self.client.table("conversations")
            .delete()
            .eq("id", str(conversation_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        return bool(response.data)

    async def update_summary(self, conversation_id: UUID, summary: str) -> None:
        """Overwrite the conversation's summary."""
        self.client.table("conversations").update(
            {"summary": summary, "updated_at": _now()}
        ).eq("id", str(conversation_id)).execute()

    async def set_inactive(self, conversation_id: UUID, user_id: UUID) -> None:
        """Mark a conversation inactive. Idempotent."""
        self.client.table("conversations").update(
            {"is_active": False, "updated_at": _now()}
        ).eq("id", str(conversation_id)).eq("user_id", str(user_id)).execute()

    # Message operations

    async def add_message(
        self,
        conversation: dict[str, Any],
        data: MessageCreate,
    ) -> dict[str, Any]:
        """Append a message to a conversation.

        The first user message of an untitled conversation becomes its
        title, and a message written in a different dialogue phase moves
        the conversation to that phase.

        Args:
            conversation: The (already owner-checked) conversation row.
            data: The message to add.

        Returns:
            dict: The created message row.
        """
        conversation_id = conversation["id"]

        message_data = {
            "conversation_id": str(conversation_id),
            "role": data.role.value,
            "content": data.content,
            "phase": data.phase,
            "tokens_used": data.tokens_used,
        }
        response = self.client.table("messages").insert(message_data).execute()

        updates: dict[str, Any] = {"updated_at": _now()}
        if data.role == MessageRole.USER and conversation.get("title") == self.DEFAULT_TITLE:
            if await self._count_user_messages(conversation_id) == 1:
                updates["title"] = title_from_text(data.content)

        if data.phase and data.phase != conversation.get("phase"):
            try:
                updates["phase"] = DialoguePhase(data.phase).value
            except ValueError:
                logger.debug("Ignoring unknown phase %r on conversation %s", data.phase, conversation_id)

        self.client.table("conversations").update(updates).eq(
            "id", str(conversation_id)
        ).execute()

        return response.data[0]

    async def _count_user_messages(self, conversation_id: UUID) -> int:
        response = (
            self.client.table("messages")
            .select("id", count="exact")
            .eq("conversation_id", str(conversation_id))
            .eq("role", MessageRole.USER.value)
            .execute()
        )
        return response.count or 0

    async def get_messages(
        self, conversation_id: UUID, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Get messages of a conversation in insertion order.

        ``seq`` breaks ties between rows written in the same bulk insert,
        which share a ``created_at``.
        """
        query = (
            self.client.table("messages")
            .select("*")
            .eq("conversation_id", str(conversation_id))
            .order("created_at", desc=False)
            .order("seq", desc=False)
        )
        if limit:
            query = query.limit(limit)

        response = query.execute()
        return response.data or []

    async def get_last_message_id(self, conversation_id: UUID) -> str | None:
        """Get the id of the newest message in a conversation."""
        response = (
            self.client.table("messages")
            .select("id")
            .eq("conversation_id", str(conversation_id))
            .order("created_at", desc=True)
            .order("seq", desc=True)
            .limit(1)
            .execute()
        )
        return str(response.data[0]["id"]) if response.data else None

    async def save_transcript(
        self, conversation_id: UUID, transcript: list[TranscriptEntry]
    ) -> int:
        """Persist a buffered voice transcript as messages, in order.

        All entries are written with a single bulk insert so the transcript
        is saved completely or not at all.

        Returns:
            int: Number of messages written.
        """
        if not transcript:
            return 0

        rows = [
            {
                "conversation_id": str(conversation_id),
                "role": entry.role.value,
                "content": entry.content,
                "phase": VOICE_PHASE,
                "tokens_used": 0,
            }
            for entry in transcript
        ]
        response = self.client.table("messages").insert(rows).execute()
        return len(response.data or rows)
