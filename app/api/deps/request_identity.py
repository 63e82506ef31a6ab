from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.users import User
from app.schemas.request_identity import RequestIdentity

logger = logging.getLogger(__name__)


def _identity_from_header(request: Request) -> RequestIdentity:
    email = request.headers.get("X-User-Email") or request.headers.get("X-User") or ""
    email = email.strip().lower()
    if not email:
        return RequestIdentity()
    return RequestIdentity(email=email, auth_source="header")


def attach_internal_user_context(
    db: Session,
    *,
    identity: RequestIdentity,
) -> RequestIdentity:
    """
    Best-effort mapping from the trusted identity header to a local user.
    A missing local user keeps the header identity as-is.
    """
    if not identity.email:
        return identity

    user = db.execute(select(User).where(User.email == identity.email)).scalar_one_or_none()
    if not user:
        logger.info("request_identity_unmapped email=%s", identity.email)
        return identity

    display_name = (user.full_name or "").strip() or user.username
    return identity.model_copy(
        update={
            "user_id": int(user.id),
            "display_name": display_name,
        }
    )


def get_request_identity(request: Request) -> RequestIdentity:
    return _identity_from_header(request)


def get_request_identity_with_db(
    request: Request,
    db: Session = Depends(get_db),
) -> RequestIdentity:
    identity = _identity_from_header(request)
    return attach_internal_user_context(db, identity=identity)


def require_actor(
    identity: RequestIdentity = Depends(get_request_identity_with_db),
) -> RequestIdentity:
    if not identity.email:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHENTICATED", "message": "Authenticated user is required."},
        )
    return identity
