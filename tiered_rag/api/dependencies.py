"""FastAPI dependency injection."""

import logging
import secrets
from typing import Iterable, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tiered_rag.config import Settings, get_settings
from tiered_rag.services.answer_service import AnswerPipeline, get_answer_pipeline
from tiered_rag.services.knowledge_service import KnowledgeService, get_knowledge_service

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


def get_settings_dep() -> Settings:
    """Get application settings."""
    return get_settings()


def get_answer_pipeline_dep() -> AnswerPipeline:
    """Get answer pipeline dependency."""
    return get_answer_pipeline()


def get_knowledge_service_dep() -> KnowledgeService:
    """Get knowledge service dependency."""
    return get_knowledge_service()


def _presented_key(
    credentials: Optional[HTTPAuthorizationCredentials],
    x_api_key: Optional[str],
) -> Optional[str]:
    if x_api_key:
        return x_api_key
    if credentials:
        return credentials.credentials
    return None


def _matches(key: Optional[str], allowed: Iterable[str]) -> bool:
    if not key:
        return False
    return any(secrets.compare_digest(key.encode(), candidate.encode()) for candidate in allowed)


async def require_chat_access(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Allow chat callers holding a chat or admin key.

    Chat is open when no chat keys are configured.
    """
    auth = settings.auth
    if not auth.api_keys:
        return

    key = _presented_key(credentials, x_api_key)
    if _matches(key, auth.api_keys) or _matches(key, auth.admin_api_keys):
        return

    logger.warning("Rejected unauthenticated chat request")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": "Unauthorized"},
    )


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Allow only callers holding an admin key."""
    key = _presented_key(credentials, x_api_key)
    if _matches(key, settings.auth.admin_api_keys):
        return

    logger.warning("Rejected unauthorized admin request")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": "Unauthorized"},
    )
