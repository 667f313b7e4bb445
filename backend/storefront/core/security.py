from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.settings import settings
from storefront.models.profile import Profile


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _decode_bearer_jwt(token: str) -> dict[str, Any]:
    if not settings.auth_jwt_secret:
        raise HTTPException(status_code=500, detail="AUTH_JWT_SECRET is not configured")

    options: dict[str, Any] = {"require": ["exp", "sub"]}
    if not settings.auth_jwt_audience:
        options["verify_aud"] = False
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience,
            issuer=settings.auth_jwt_issuer,
            options=options,
        )
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")


def _decide_role(
    *,
    email_is_admin: bool,
    claim_is_admin: bool,
    db_role: str | None,
) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_profile")
    if email_is_admin:
        return ("admin", "admin_emails")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if dbr:
        return (dbr, "db_profile")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    """Resolve the caller from the bearer token only; there is no session or header fallback."""
    token = _get_bearer_token(request)

    claims = _decode_bearer_jwt(token)
    user_id = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    app_meta = claims.get("app_metadata") or {}
    if not isinstance(app_meta, dict):
        app_meta = {}
    claimed_role = str(app_meta.get("role") or "").strip().lower()
    top_level_role = str(claims.get("role") or "").strip().lower()
    claim_is_admin = claimed_role == "admin" or top_level_role == "admin"
    email_is_admin = _is_admin_email(email)

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        initial_role, _reason = _decide_role(
            email_is_admin=email_is_admin,
            claim_is_admin=claim_is_admin,
            db_role=None,
        )
        profile = Profile(id=user_id, email=email, role=initial_role)
        db.add(profile)
        db.commit()
        db.refresh(profile)
    else:
        changed = False
        next_role, _reason = _decide_role(
            email_is_admin=email_is_admin,
            claim_is_admin=claim_is_admin,
            db_role=profile.role,
        )
        if next_role and (profile.role or "").strip().lower() != next_role:
            profile.role = next_role
            changed = True
        if email and (profile.email or "") != email:
            profile.email = email
            changed = True
        if changed:
            db.commit()

    return CurrentUser(id=profile.id, email=profile.email or "", role=profile.role or "user")


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if (user.role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
