"""
Bearer-token authentication for the portal API.

Access tokens are issued by the backend's auth subsystem when a user signs
in. The API verifies them locally and then forwards the same token to the
backend, so every query it makes on the user's behalf is evaluated under the
user's own row-level policies.

Verification rules:
1. Signature checked with SUPABASE_JWT_SECRET (HS256 unless JWT_ALGORITHM says otherwise)
2. Audience must match JWT_AUDIENCE (default "authenticated")
3. ``exp`` and ``sub`` are required; expired tokens are rejected

Application roles (CLINICIAN, ORG_ADMIN, ...) live on the profile row, not in
the token. Authorization for admin operations happens in AdminActions.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from firstprinciples.app.config import ConfigurationError, get_jwt_settings

security = HTTPBearer()


class Identity(BaseModel):
    """
    Authenticated caller, derived from a verified access token.

    ``access_token`` is kept so request-scoped backend clients can act as
    this user.
    """

    sub: str
    email: Optional[str] = None
    role: str = "authenticated"
    exp: Optional[int] = None
    access_token: str


def decode_access_token(token: str) -> dict:
    """
    Decode and validate an access token.

    Raises:
        HTTPException: 401 if the token is invalid, expired or malformed;
            500 if token verification is not configured
    """
    try:
        secret, algorithm, audience = get_jwt_settings()
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "configuration_error", "message": str(e)},
        )

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": True,
                "require_exp": True,
                "require_sub": True,
            },
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "invalid_token",
                "message": f"Token validation failed: {str(e)}",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Identity:
    """
    Resolve the caller's identity from the Authorization header.

    Raises:
        HTTPException: 401 if the token is invalid or has no subject
    """
    token = credentials.credentials
    payload = decode_access_token(token)

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "missing_claim",
                "message": "Token missing 'sub' claim",
            },
        )

    return Identity(
        sub=sub,
        email=payload.get("email"),
        role=payload.get("role") or "authenticated",
        exp=payload.get("exp"),
        access_token=token,
    )


def create_access_token(
    sub: str,
    email: Optional[str] = None,
    expires_in_seconds: int = 3600,
    role: str = "authenticated",
) -> str:
    """
    Mint an access token in the backend's format.

    Tokens in production come from the backend's auth subsystem; this is for
    tests and local tooling that share SUPABASE_JWT_SECRET.
    """
    secret, algorithm, audience = get_jwt_settings()
    now = int(datetime.now(timezone.utc).timestamp())

    payload = {
        "sub": sub,
        "aud": audience,
        "role": role,
        "iat": now,
        "exp": now + expires_in_seconds,
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, secret, algorithm=algorithm)
