"""
Auth collaborator: turns the external provider's bearer token into an
(email, user id) pair. No header means an anonymous request; a header that
fails verification is rejected rather than treated as anonymous.
"""
import logging
import os
from typing import Optional

import jwt  # PyJWT
from fastapi import Header, HTTPException, status

from coachbot.services.identity_resolver import AuthIdentity
from coachbot.utils.session_keys import normalize_email

logger = logging.getLogger(__name__)

_jwks_clients = {}


def get_jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    client = _jwks_clients.get(jwks_url)
    if client is None:
        client = jwt.PyJWKClient(jwks_url, cache_keys=True)
        _jwks_clients[jwks_url] = client
    return client


def verify_token(token: str) -> dict:
    """
    Verify a provider JWT. HS256 uses AUTH_JWT_SECRET; RS256/ES256 use the
    keys published at AUTH_JWKS_URL. Returns the payload.
    """
    try:
        header = jwt.get_unverified_header(token)
    except jwt.DecodeError as e:
        logger.info("Rejected token with undecodable header: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token header")

    algo = header.get("alg")
    audience = os.getenv("AUTH_JWT_AUDIENCE") or None
    options = {"verify_aud": audience is not None}

    if algo == "HS256":
        secret = os.getenv("AUTH_JWT_SECRET")
        if not secret:
            logger.error("AUTH_JWT_SECRET is missing for HS256 verification")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server misconfiguration: AUTH_JWT_SECRET not set"
            )
        key = secret
    elif algo in ("RS256", "ES256"):
        jwks_url = os.getenv("AUTH_JWKS_URL")
        if not jwks_url:
            logger.error("AUTH_JWKS_URL is missing for %s verification", algo)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server misconfiguration: AUTH_JWKS_URL not set"
            )
        try:
            key = get_jwks_client(jwks_url).get_signing_key_from_jwt(token).key
        except jwt.PyJWKClientError as e:
            logger.warning("Could not load signing key from %s: %s", jwks_url, e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication service temporarily unavailable. Please try again in a moment."
            )
    else:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unsupported token algorithm")

    try:
        return jwt.decode(token, key, algorithms=[algo], audience=audience, options=options)
    except jwt.PyJWTError as e:
        logger.info("%s verification failed: %s", algo, e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def get_auth_identity(authorization: Optional[str] = Header(None)) -> Optional[AuthIdentity]:
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid header format. Expected 'Bearer <token>'"
        )

    token = authorization[len("Bearer "):].strip()
    if not token or token.lower() in ("null", "undefined", "none"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    payload = verify_token(token)
    email = normalize_email(payload.get("email"))
    if not email:
        # Verified but carries no email: nothing to reconcile against
        logger.info("Token for sub=%s has no email, treating request as anonymous", payload.get("sub"))
        return None

    sub = payload.get("sub")
    return AuthIdentity(
        email=email,
        user_id=str(sub) if sub else None,
        provider=payload.get("provider"),
    )
