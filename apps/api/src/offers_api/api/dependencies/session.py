"""Session-aware dependencies for offer listing APIs."""

from __future__ import annotations

from fastapi import Header, HTTPException, status


async def require_user_id(session_user: str | None = Header(None, alias="X-Session-User")) -> str:
    """Resolve the requesting user id from the forwarded session header."""

    user_id = (session_user or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    if len(user_id) > 64:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        )
    return user_id
