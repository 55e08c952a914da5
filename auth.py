"""
Request authentication.

A request's principal is resolved in three steps: pick a token (bearer
header first, then the session cookies), verify it, then look the embedded
identity up in the credential stores in ``RESOLUTION_ORDER``. The first
store holding the identity decides the role; nothing in the token or the
request body can claim a role.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from pymongo.database import Database

from database import find_optional, get_db, sanitize
from errors import Forbidden, MalformedInput, PrincipalNotFound, Unauthenticated
from security import ROLE_ADMIN, ROLE_USER, cookies, is_placeholder, verify_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# (collection, role) pairs, checked in order
RESOLUTION_ORDER: Tuple[Tuple[str, str], ...] = (("user", ROLE_USER), ("admin", ROLE_ADMIN))


class Principal(BaseModel):
    id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None
    profile: Dict[str, Any] = {}

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def public(self) -> Dict[str, Any]:
        return {**self.profile, "id": self.id, "role": self.role}


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
    slot: Optional[str] = None,
) -> Optional[str]:
    """Bearer header overrides cookies entirely, even when it only carries a placeholder."""
    if credentials is not None:
        return None if is_placeholder(credentials.credentials) else credentials.credentials
    if slot is not None:
        return cookies.read(request, slot)
    return cookies.read_any(request)


def lookup_principal(db: Database, identity: str) -> Principal:
    for collection, role in RESOLUTION_ORDER:
        doc = find_optional(db, collection, identity)
        if doc:
            profile = sanitize(doc)
            return Principal(
                id=profile["id"],
                role=role,
                email=profile.get("email"),
                name=profile.get("name"),
                profile=profile,
            )
    raise PrincipalNotFound()


def resolve_principal(
    request: Request,
    db: Database,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Principal:
    token = extract_token(request, credentials)
    if not token:
        raise MalformedInput()
    try:
        claims = verify_token(token)
    except Unauthenticated as exc:
        logger.debug("token rejected on %s: %s", request.url.path, exc.detail)
        raise
    principal = lookup_principal(db, claims.identity)
    request.state.principal = principal
    return principal


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Principal:
    return resolve_principal(request, db, credentials)


def optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Optional[Principal]:
    try:
        return resolve_principal(request, db, credentials)
    except (Unauthenticated, PrincipalNotFound):
        return None


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Access denied. Admin privileges required.")
    return principal
