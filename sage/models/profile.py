"""Profile model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Profile(TypedDict):
    """profiles row, keyed by the auth user id.

    Holds the credit balance and the regenerated profile summary paragraph.
    """

    id: UUID
    email: str | None
    name: str | None
    credits: int
    profile_summary: str | None
    created_at: datetime
    updated_at: datetime
