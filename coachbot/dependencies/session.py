"""
Session marker transport (an HTTP cookie) and the per-request identity dependency.
"""
import os
from typing import Optional
from urllib.parse import unquote

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from coachbot.db.session import get_db
from coachbot.dependencies.auth import get_auth_identity
from coachbot.services.identity_resolver import AuthIdentity, IdentityResolution, resolve_identity

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "mc_session_id")
SESSION_COOKIE_MAX_AGE = int(os.getenv("SESSION_COOKIE_MAX_AGE_DAYS", "90")) * 24 * 60 * 60
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")
SESSION_HEADER_NAME = "x-session-id"


def read_session_cookie(request: Request) -> Optional[str]:
    raw = request.cookies.get(SESSION_COOKIE_NAME)
    return unquote(raw) if raw else None


def read_session_header(request: Request) -> Optional[str]:
    return request.headers.get(SESSION_HEADER_NAME) or None


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        max_age=SESSION_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )


def _resolve(request: Request, response: Response, db: Session, auth: Optional[AuthIdentity], generate_if_missing: bool) -> IdentityResolution:
    resolution = resolve_identity(
        db,
        cookie_token=read_session_cookie(request),
        auth=auth,
        header_token=read_session_header(request),
        allow_header=True,
        generate_if_missing=generate_if_missing,
    )
    if resolution.should_set_cookie:
        set_session_cookie(response, resolution.session_id)
    return resolution


def get_identity(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    auth: Optional[AuthIdentity] = Depends(get_auth_identity),
) -> IdentityResolution:
    """Resolve the caller, minting a new session when none was presented."""
    return _resolve(request, response, db, auth, generate_if_missing=True)


def require_identity(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    auth: Optional[AuthIdentity] = Depends(get_auth_identity),
) -> IdentityResolution:
    """Resolve the caller; SESSION_REQUIRED when neither cookie nor header was presented."""
    return _resolve(request, response, db, auth, generate_if_missing=False)
