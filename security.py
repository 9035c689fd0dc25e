from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import settings
from logging_config import set_user_id

# Cookie sessions are the primary transport, so a missing header is not an error here
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode('utf-8')[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        return False


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Invalid or expired token.",
        )


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.TOKEN_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_token_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.TOKEN_COOKIE_NAME, path="/")


async def get_current_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """Decode the caller's token from the Authorization header or the session cookie."""
    token = credentials.credentials if credentials else request.cookies.get(settings.TOKEN_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized: No token provided.")

    claims = decode_token(token)
    if claims.get("type") != "access":
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token type.")
    if not claims.get("UserId"):
        raise HTTPException(status_code=401, detail="Unauthorized: User ID not found in token.")
    set_user_id(claims["UserId"])
    return claims


def require_user_type(*user_types: str):
    """Dependency factory: the token's flat ``userType`` must be one of ``user_types``."""

    async def checker(claims: Dict[str, Any] = Depends(get_current_claims)) -> Dict[str, Any]:
        if claims.get("userType") not in user_types:
            raise HTTPException(
                status_code=403,
                detail=f"Forbidden: {' or '.join(user_types)} access required.",
            )
        return claims

    return checker


def require_user_role(role: str):
    """Dependency factory: ``role`` must be listed in the token's ``userRoles``."""

    async def checker(claims: Dict[str, Any] = Depends(get_current_claims)) -> Dict[str, Any]:
        if role not in (claims.get("userRoles") or []):
            raise HTTPException(status_code=403, detail=f"Forbidden: You are not a {role}.")
        return claims

    return checker


require_admin = require_user_type("Admin")
require_project_manager = require_user_type("ProjectManager")
require_team_leader = require_user_role("TeamLeader")
require_team_member = require_user_role("TeamMember")
