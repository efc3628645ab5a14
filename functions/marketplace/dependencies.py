"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from marketplace.auth import Identity
from marketplace.context import MarketplaceContext
from marketplace.errors import AuthError


def get_context(request: Request) -> MarketplaceContext:
    return request.app.state.context


def get_identity(
    authorization: Optional[str] = Header(default=None),
    context: MarketplaceContext = Depends(get_context),
) -> Identity:
    """Resolves the caller from an `Authorization: Bearer <id token>` header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return context.auth.verify_id_token(authorization[len("Bearer ") :])
    except AuthError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
