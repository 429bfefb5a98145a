"""Resolve the acting user for audit fields."""

from typing import Optional
from fastapi import Header


async def get_actor_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    """User id from the ``X-User-Id`` header, or None when it is absent."""
    return x_user_id
