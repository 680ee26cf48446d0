"""
Password hashing, JWT issuing/decoding and the role model.

Access tokens are short lived and carry the user's id, email and role.
Refresh tokens carry the same claims plus a random ``jti``; only their
SHA-256 digest is stored server side so a leaked table cannot be replayed.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from pydantic import BaseModel
import hashlib
import secrets
from enum import Enum

from .config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

security = HTTPBearer()

class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"

class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

class TokenPayload(BaseModel):
    sub: Optional[int] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    exp: Optional[int] = None
    token_type: Optional[TokenType] = None
    jti: Optional[str] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return datetime.utcfromtimestamp(self.exp) if self.exp else None

# Passwords and opaque tokens

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def generate_password_reset_token() -> str:
    return secrets.token_urlsafe(32)

def hash_token(token: str) -> str:
    """Digest under which refresh and reset tokens are stored."""
    return hashlib.sha256(token.encode()).hexdigest()

# JWT

def _encode(claims: Dict[str, Any], token_type: TokenType, lifetime: timedelta) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = datetime.utcnow() + lifetime
    to_encode["token_type"] = token_type.value
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_access_token(claims: Dict[str, Any]) -> str:
    return _encode(
        claims, TokenType.ACCESS, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

def create_refresh_token(claims: Dict[str, Any]) -> str:
    # jti keeps two refresh tokens issued in the same second distinct
    return _encode(
        dict(claims, jti=secrets.token_hex(8)),
        TokenType.REFRESH,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )

def verify_token(token: str, expected_type: Optional[TokenType] = None) -> Optional[TokenPayload]:
    """Decode a JWT; None when it is invalid, expired or of the wrong type."""
    try:
        payload = TokenPayload(
            **jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        )
    except (JWTError, ValueError):
        return None
    if expected_type and payload.token_type != expected_type:
        return None
    return payload

def create_token_pair(user_id: int, email: str, role: UserRole) -> Token:
    # "sub" must be a string claim
    claims = {"sub": str(user_id), "email": email, "role": UserRole(role).value}
    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
