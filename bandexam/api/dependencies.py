"""
Shared FastAPI dependencies: the session manager and the caller's identity.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from config import get_settings
from bandexam.content.provider import JsonContentProvider
from bandexam.db.database import get_session_factory
from bandexam.session.manager import SessionManager


@lru_cache(maxsize=1)
def get_session_manager() -> SessionManager:
    """Session manager wired to the configured database and content directory."""
    settings = get_settings()
    return SessionManager(
        get_session_factory(),
        JsonContentProvider(settings.content_dir),
        notify_on_expire=settings.notify_on_expire,
    )


def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the verified
    user id in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
