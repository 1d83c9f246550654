"""
API Dependencies
Common dependencies for FastAPI routes (database sessions, caller identity,
progress store, gateway and the pipeline dispatcher).
"""

import secrets
from typing import Generator, Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.gateway import ServiceGateway
from app.services.progress import ProgressStore, get_progress_store as _get_progress_store
from app.workers.queue import QueueManager, get_queue_manager as _get_queue_manager


def get_db() -> Generator:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, set by the upstream auth provider."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return x_user_id.strip()


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Operator-only endpoints: the caller must present ADMIN_TOKEN."""
    if not settings.ADMIN_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin endpoints are disabled"
        )
    if not x_admin_token or not secrets.compare_digest(
        x_admin_token.strip().encode(), settings.ADMIN_TOKEN.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token"
        )


def get_progress_store() -> ProgressStore:
    return _get_progress_store()


_gateway: Optional[ServiceGateway] = None


def get_gateway() -> ServiceGateway:
    global _gateway
    if _gateway is None:
        _gateway = ServiceGateway()
    return _gateway


def get_queue_manager() -> QueueManager:
    return _get_queue_manager()
