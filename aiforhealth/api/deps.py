from fastapi import Depends, HTTPException, status, Request, Query
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional, List, Tuple
import logging

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, UserRole, TokenPayload, TokenType
)
from ..models.audit_log import AuditAction
from ..models.user import User
from ..services.audit_service import AuditService

logger = logging.getLogger(__name__)

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials, TokenType.ACCESS)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    return token_payload

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

async def get_admin_user(
    current_user: User = Depends(require_role([UserRole.ADMIN]))
) -> User:
    """Require admin role."""
    return current_user

async def get_staff_user(
    current_user: User = Depends(require_role([UserRole.DOCTOR, UserRole.ADMIN]))
) -> User:
    """Require doctor or admin role."""
    return current_user

async def get_doctor_user(
    current_user: User = Depends(require_role([UserRole.DOCTOR]))
) -> User:
    """Require doctor role."""
    return current_user

async def get_patient_user(
    current_user: User = Depends(require_role([UserRole.PATIENT]))
) -> User:
    """Require patient role."""
    return current_user

def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1),
) -> Tuple[int, int]:
    """Page number and page size, the size capped at MAX_PAGE_SIZE."""
    return page, min(limit, settings.MAX_PAGE_SIZE)

def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis),
    db: Session = Depends(get_db)
) -> None:
    """Fixed-window rate limit per client IP and path."""
    key = f"rate_limit:{request.url.path}:{client_ip(request)}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, settings.RATE_LIMIT_WINDOW_SECONDS, 1)
        return

    if int(current_requests) >= settings.RATE_LIMIT_MAX_REQUESTS:
        logger.warning("Rate limit exceeded for %s", key)
        AuditService(db).record(
            AuditAction.RATE_LIMIT_EXCEEDED, "Endpoint",
            resource_id=request.url.path, method=request.method,
            ip=client_ip(request), user_agent=request.headers.get("user-agent"),
            success=False,
        )
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later."
        )
    redis_client.incr(key)
