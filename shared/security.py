"""
Route guards for storefront customers and admins.

Sign-in happens at the hosted identity provider; this service only checks the
HS256 bearer tokens it issues. `sub` carries the numeric user id and `role`
is either "Admin" or "User".
"""
import os

from fastapi import Depends, Header, HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

ADMIN_ROLE = "Admin"
DEFAULT_ROLE = "User"
TOKEN_ALGORITHMS = ["HS256"]

JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is not set")
JWT_ISSUER = os.getenv("JWT_ISSUER") or None
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE") or None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token:
        raise _unauthorized("Missing bearer token")
    return token


def decode_token(token: str) -> dict:
    """Check signature and expiry, plus issuer/audience when those are configured."""
    return jwt.decode(
        token,
        JWT_SECRET,
        algorithms=TOKEN_ALGORITHMS,
        issuer=JWT_ISSUER,
        audience=JWT_AUDIENCE,
        options={"verify_aud": JWT_AUDIENCE is not None},
    )


def require_user(authorization: str | None = Header(default=None)) -> dict:
    """Claims of the calling customer, with `user_id` parsed from `sub`."""
    try:
        claims = decode_token(_bearer_token(authorization))
    except ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except JWTError:
        raise _unauthorized("Invalid token")

    try:
        claims["user_id"] = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise _unauthorized("Invalid token subject")
    claims.setdefault("role", DEFAULT_ROLE)
    return claims


def is_admin(claims: dict) -> bool:
    return claims.get("role") == ADMIN_ROLE or bool(claims.get("is_admin"))


def require_admin(claims: dict = Depends(require_user)) -> dict:
    if not is_admin(claims):
        raise HTTPException(status_code=403, detail="Admin only")
    return claims
