from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import (
    get_current_user, rate_limit_check, get_current_user_token, client_ip
)
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    RefreshTokenRequest, PasswordReset, PasswordResetConfirm, ChangePassword,
    EmailVerification
)
from ...schemas.common import MessageResponse
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

def _auth_service(request: Request, db: Session) -> AuthService:
    return AuthService(db, ip=client_ip(request), user_agent=request.headers.get("user-agent"))

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a new patient or doctor account."""
    if user_data.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator accounts cannot be self-registered"
        )
    user = _auth_service(request, db).register_user(user_data)
    return UserResponse.from_orm(user)

@router.post("/login", response_model=TokenResponse)
async def login(
    request: Request,
    login_data: UserLogin,
    db: Session = Depends(get_db),
):
    """Authenticate user and return access tokens."""
    return _auth_service(request, db).authenticate_user(login_data)

@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Exchange a refresh token for a new token pair."""
    return _auth_service(request, db).refresh_access_token(refresh_data.refresh_token)

@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    success = _auth_service(request, db).logout_user(refresh_data.refresh_token)
    return {"message": "Successfully logged out" if success else "Logout completed"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.from_orm(current_user)

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: Request,
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    _auth_service(request, db).change_password(
        current_user, password_data.current_password, password_data.new_password
    )
    return {"message": "Password changed successfully"}

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: Request,
    reset_data: PasswordReset,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Request password reset."""
    _auth_service(request, db).request_password_reset(reset_data.email)
    return {"message": "If the email exists, a password reset link has been sent"}

@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: Request,
    reset_data: PasswordResetConfirm,
    db: Session = Depends(get_db)
):
    """Reset password using reset token."""
    _auth_service(request, db).reset_password(reset_data)
    return {"message": "Password reset successfully"}

@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    request: Request,
    verification: EmailVerification,
    db: Session = Depends(get_db)
):
    """Confirm an email address with the token from the registration email."""
    _auth_service(request, db).verify_email(verification.token)
    return {"message": "Email verified successfully"}

@router.post("/verify-token")
async def verify_token_endpoint(
    token_payload = Depends(get_current_user_token)
):
    """Verify if the current token is valid."""
    return {
        "valid": True,
        "user_id": token_payload.sub,
        "email": token_payload.email,
        "role": token_payload.role,
        "expires_at": token_payload.expires_at
    }
