# backend/hustle/api/dependencies/auth.py
"""Authenticated caller dependency."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends

from ...auth import get_token_payload


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity taken from the bearer token."""

    id: str
    email: Optional[str] = None


async def get_current_user(payload: Dict[str, Any] = Depends(get_token_payload)) -> CurrentUser:
    email = payload.get("email")
    return CurrentUser(id=payload["sub"], email=email if isinstance(email, str) else None)
