"""Bearer token verification and per-document access decisions."""

from dataclasses import dataclass
import hmac
import logging
from typing import Dict, List, Optional, Sequence

from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.config import settings
from docqa.core.constants import AccessLevel
from docqa.db.models.document import Document
from docqa.services.documents.document_service import DocumentService

logger = logging.getLogger(__name__)

REASON_REQUIRES_AUTH = "requires_auth"
REASON_REQUIRES_PASSCODE = "requires_passcode"
REASON_DENIED = "denied"
REASON_NOT_FOUND = "not_found"

OWNER_ADMIN_ROLE = "owner_admin"


def verify_token(token: Optional[str]) -> Optional[str]:
    """User id (``sub``) from a valid bearer token; None for missing or invalid tokens."""
    if not token or not settings.JWT_SECRET:
        return None
    try:
        options = {"verify_aud": settings.JWT_AUDIENCE is not None}
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=settings.JWT_ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.info(f"Ignoring invalid bearer token: {e}")
        return None
    return payload.get("sub")


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


@dataclass
class AccessDecision:
    slug: str
    allowed: bool
    reason: Optional[str] = None
    document: Optional[Document] = None

    def message(self, user_id: Optional[str]) -> str:
        if self.reason == REASON_REQUIRES_PASSCODE:
            return f'The document "{self.slug}" requires a passcode. Please provide the passcode.'
        if self.reason == REASON_NOT_FOUND:
            return f'The document "{self.slug}" is not available.'
        if user_id:
            return f'You do not have permission to access the document "{self.slug}"'
        return f'The document "{self.slug}" requires authentication. Please log in.'


def _passcode_matches(expected: Optional[str], supplied: Optional[str]) -> bool:
    if not expected or not expected.strip() or not supplied:
        return False
    return hmac.compare_digest(expected.strip().encode(), supplied.strip().encode())


def decide_access(
    slug: str,
    document: Optional[Document],
    user_id: Optional[str],
    passcode: Optional[str],
    roles_by_owner: Dict[str, str],
) -> AccessDecision:
    """Access decision for one document given the caller's owner memberships.

    Args:
        slug: Requested slug
        document: Active document for the slug, or None
        user_id: Authenticated user or None for anonymous
        passcode: Passcode supplied with the request
        roles_by_owner: owner_id -> role for the caller's memberships
    """
    if document is None:
        return AccessDecision(slug, False, REASON_NOT_FOUND)

    level = document.access_level
    role = roles_by_owner.get(document.owner_id) if document.owner_id else None

    if level == AccessLevel.PUBLIC.value:
        return AccessDecision(slug, True, document=document)

    if level == AccessLevel.PASSCODE.value:
        if _passcode_matches(document.passcode, passcode) or role is not None:
            return AccessDecision(slug, True, document=document)
        if passcode:
            return AccessDecision(slug, False, REASON_DENIED, document)
        return AccessDecision(slug, False, REASON_REQUIRES_PASSCODE, document)

    if not user_id:
        return AccessDecision(slug, False, REASON_REQUIRES_AUTH, document)

    if level == AccessLevel.REGISTERED.value:
        return AccessDecision(slug, True, document=document)

    if document.owner_id is None:
        # Ownerless documents are reserved for super-admin tooling
        return AccessDecision(slug, False, REASON_DENIED, document)

    if level == AccessLevel.OWNER_RESTRICTED.value and role is not None:
        return AccessDecision(slug, True, document=document)
    if level == AccessLevel.OWNER_ADMIN_ONLY.value and role == OWNER_ADMIN_ROLE:
        return AccessDecision(slug, True, document=document)
    return AccessDecision(slug, False, REASON_DENIED, document)


class DocumentAccessService:
    """Resolves documents and access decisions for a chat request."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.documents = DocumentService(db_session)

    async def check_access(
        self,
        document_slugs: Sequence[str],
        user_id: Optional[str],
        passcode: Optional[str] = None,
    ) -> List[AccessDecision]:
        """One decision per requested slug, in request order."""
        documents = await self.documents.get_by_slugs(document_slugs)
        roles_by_owner: Dict[str, str] = {}
        if user_id:
            memberships = await self.documents.get_memberships(user_id)
            roles_by_owner = {m.owner_id: m.role for m in memberships}

        decisions = [
            decide_access(slug, documents.get(slug), user_id, passcode, roles_by_owner)
            for slug in document_slugs
        ]
        for decision in decisions:
            if not decision.allowed:
                logger.info(
                    f"Access denied to {decision.slug} for {user_id or 'anonymous'}: {decision.reason}"
                )
        return decisions
