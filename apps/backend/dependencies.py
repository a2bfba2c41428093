"""
LexFill - Request Dependencies
==============================
FastAPI dependencies shared by the routers.
"""

from typing import Optional

import structlog
from fastapi import Header, HTTPException


async def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Identity of the caller, taken from the X-User-Id header.

    Authentication happens in front of this service; a missing header
    means the request did not pass through it.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id
