from collections.abc import AsyncGenerator
from typing import Optional
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.db.session import AsyncSessionLocal
from docqa.services.chat.access import verify_token

logger = logging.getLogger(__name__)

# Missing credentials are not an error: anonymous users may read public documents
optional_security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[str]:
    """User id from a valid bearer token, or None for anonymous callers."""
    if not credentials:
        return None
    user_id = verify_token(credentials.credentials)
    if user_id is None:
        logger.warning("Invalid bearer token, treating request as anonymous")
    return user_id


def get_client_ip(request: Request) -> Optional[str]:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None
