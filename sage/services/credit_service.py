"""Credit balance and usage ledger service."""

import logging
import math
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sage.core.config import get_settings
from sage.core.supabase import get_supabase_client
from sage.models.usage import UsageType

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def calculate_credits_used(
    prompt_tokens: int,
    completion_tokens: int,
    tokens_per_credit: int | None = None,
) -> int:
    """Convert token counts to credits, rounding up."""
    ratio = tokens_per_credit or get_settings().tokens_per_credit
    return math.ceil((prompt_tokens + completion_tokens) / ratio)


def estimate_tokens(text: str) -> int:
    """Rough token estimate used when the provider reports no usage."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class DeductionResult:
    """Outcome of one check-and-deduct attempt."""

    success: bool
    remaining_credits: int
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "remaining_credits": self.remaining_credits,
            "reason": self.reason,
        }


class CreditService:
    """Service for reading balances and writing the usage ledger.

    Deductions go through the ``deduct_credits`` database function, which
    locks the profile row, checks the balance, decrements it and inserts
    the ledger entry in one transaction. A balance can therefore never go
    negative, and every successful deduction has exactly one ledger row.
    """

    DEFAULT_HISTORY_LIMIT = 50

    def __init__(self) -> None:
        """Initialize credit service with Supabase client."""
        self.client = get_supabase_client()

    async def get_balance(self, user_id: UUID) -> int:
        """Get a user's credit balance (0 when the user has no profile)."""
        response = (
            self.client.table("profiles")
            .select("credits")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        if response and response.data:
            return int(response.data.get("credits") or 0)
        return 0

    async def has_enough_credits(self, user_id: UUID, estimated_credits: int) -> bool:
        """Check whether a user's balance covers an estimated cost."""
        return await self.get_balance(user_id) >= estimated_credits

    async def deduct_credits(
        self,
        user_id: UUID,
        credits_used: int,
        tokens_used: int,
        usage_type: UsageType,
        model_id: str | None = None,
        reference_id: str | None = None,
    ) -> DeductionResult:
        """Atomically deduct credits and record one ledger entry.

        Args:
            user_id: The user being charged.
            credits_used: Credits to deduct.
            tokens_used: Tokens recorded on the ledger entry.
            usage_type: Billable operation kind.
            model_id: Model that produced the usage.
            reference_id: Idempotency key; a second deduction with the same
                key is refused.

        Returns:
            DeductionResult: success flag, balance after the attempt and,
            on refusal, the reason (insufficient_credits, duplicate,
            user_not_found).
        """
        response = self.client.rpc(
            "deduct_credits",
            {
                "p_user_id": str(user_id),
                "p_credits": credits_used,
                "p_tokens": tokens_used,
                "p_type": usage_type.value,
                "p_model_id": model_id,
                "p_reference_id": reference_id,
            },
        ).execute()

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else {}
        data = data or {}

        result = DeductionResult(
            success=bool(data.get("success")),
            remaining_credits=int(data.get("remaining_credits") or 0),
            reason=data.get("reason"),
        )

        if result.success:
            logger.info(
                "Deducted %d credits from user %s (%s), %d remaining",
                credits_used,
                user_id,
                usage_type.value,
                result.remaining_credits,
            )
        else:
            logger.warning(
                "Credit deduction refused for user %s: %s (requested=%d, balance=%d)",
                user_id,
                result.reason,
                credits_used,
                result.remaining_credits,
            )

        return result

    async def add_credits(self, user_id: UUID, credits: int) -> int:
        """Add credits to a user's balance.

        Returns:
            int: The new balance.
        """
        response = self.client.rpc(
            "add_credits",
            {"p_user_id": str(user_id), "p_credits": credits},
        ).execute()
        return int(response.data or 0)

    async def get_usage_history(
        self, user_id: UUID, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Get a user's most recent ledger entries, newest first."""
        response = (
            self.client.table("usage_records")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .limit(limit or self.DEFAULT_HISTORY_LIMIT)
            .execute()
        )
        return response.data or []
