from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime, timedelta
from typing import Optional
import logging

from ..core.config import settings
from ..models.audit_log import AuditAction
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.user import User, RefreshToken
from ..core.security import (
    verify_password, get_password_hash, create_token_pair, hash_token,
    verify_token, UserRole, TokenType, generate_password_reset_token
)
from ..schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse, PasswordResetConfirm
)
from .audit_service import AuditService
from .email_service import EmailService

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(
        self,
        db: Session,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        email_service: Optional[EmailService] = None,
    ):
        self.db = db
        self.ip = ip
        self.user_agent = user_agent
        self.audit = AuditService(db)
        self.email_service = email_service or EmailService()

    def _audit(self, action: str, user_id: Optional[int] = None, success: bool = True,
               error_message: Optional[str] = None, **meta):
        self.audit.record(
            action, "User", user_id=user_id, resource_id=user_id,
            ip=self.ip, user_agent=self.user_agent,
            success=success, error_message=error_message, meta=meta,
        )

    def register_user(self, user_data: UserRegister, created_by: Optional[User] = None) -> User:
        """Register a new user together with its patient or doctor profile."""
        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        if user_data.role == UserRole.DOCTOR and user_data.license_number:
            taken = self.db.query(Doctor).filter(
                Doctor.license_number == user_data.license_number
            ).first()
            if taken:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="License number already registered"
                )

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role,
            is_active=True,
            is_verified=False
        )
        self.db.add(new_user)
        self.db.flush()

        if user_data.role == UserRole.PATIENT:
            self.db.add(Patient(
                user_id=new_user.id,
                created_by_id=created_by.id if created_by else None,
                first_name=user_data.first_name,
                last_name=user_data.last_name,
                phone_number=user_data.phone_number,
                date_of_birth=user_data.date_of_birth,
                gender=user_data.gender,
            ))
        elif user_data.role == UserRole.DOCTOR:
            self.db.add(Doctor(
                user_id=new_user.id,
                first_name=user_data.first_name,
                last_name=user_data.last_name,
                phone_number=user_data.phone_number,
                specialization=user_data.specialization or "General Practice",
                license_number=user_data.license_number,
            ))

        verification_token = generate_password_reset_token()
        new_user.email_verification_token = hash_token(verification_token)
        new_user.email_verification_expires = datetime.utcnow() + timedelta(
            hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
        )

        self._audit(AuditAction.REGISTER, new_user.id, role=UserRole(user_data.role).value)
        self.db.commit()
        self.db.refresh(new_user)

        if not self.email_service.send_email_verification(new_user.email, verification_token):
            logger.warning("Verification email for user %s was not delivered", new_user.id)
        logger.info("Registered %s user %s", UserRole(new_user.role).value, new_user.id)
        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user:
            self._audit(AuditAction.FAILED_LOGIN, success=False,
                        error_message="Unknown email", email=login_data.email)
            self.db.commit()
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if user.is_locked():
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is temporarily locked due to multiple failed login attempts"
            )

        if not verify_password(login_data.password, user.password_hash):
            self._handle_failed_login(user)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()
        self._audit(AuditAction.LOGIN, user.id)
        return self._issue_tokens(user)

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Rotate a refresh token into a new token pair."""
        token_payload = verify_token(refresh_token, TokenType.REFRESH)
        if not token_payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.is_revoked == False,
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token"
            )

        user = self.db.query(User).filter(
            User.id == token_payload.sub
        ).first()

        if not user or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive"
            )

        stored_token.is_revoked = True
        return self._issue_tokens(user)

    def logout_user(self, refresh_token: str) -> bool:
        """Revoke a refresh token. Returns False if it was unknown."""
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token)
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.audit.record(AuditAction.LOGOUT, "User", user_id=stored_token.user_id,
                          resource_id=stored_token.user_id, ip=self.ip)
        self.db.commit()
        return True

    def change_password(self, user: User, current_password: str, new_password: str):
        if not verify_password(current_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )

        user.password_hash = get_password_hash(new_password)
        self._audit(AuditAction.PASSWORD_CHANGE, user.id)
        self.db.commit()

    def request_password_reset(self, email: str) -> bool:
        """Generate a reset token and mail it. Never reveals whether the email exists."""
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            return True

        reset_token = generate_password_reset_token()
        user.password_reset_token = hash_token(reset_token)
        user.password_reset_expires = datetime.utcnow() + timedelta(hours=1)

        self.db.commit()

        if not self.email_service.send_password_reset(user.email, reset_token):
            logger.warning("Password reset email for user %s was not delivered", user.id)
        return True

    def reset_password(self, reset_data: PasswordResetConfirm) -> bool:
        """Reset password using reset token."""
        user = self.db.query(User).filter(
            User.password_reset_token == hash_token(reset_data.token),
            User.password_reset_expires > datetime.utcnow()
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token"
            )

        user.password_hash = get_password_hash(reset_data.new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.failed_login_attempts = 0
        user.locked_until = None

        # Revoke all refresh tokens
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id
        ).update({"is_revoked": True})

        self._audit(AuditAction.PASSWORD_RESET, user.id)
        self.db.commit()
        return True

    def verify_email(self, token: str) -> User:
        """Mark the account behind a verification token as verified. Tokens work once."""
        user = self.db.query(User).filter(
            User.email_verification_token == hash_token(token),
            User.email_verification_expires > datetime.utcnow()
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired verification token"
            )

        user.is_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        self._audit(AuditAction.EMAIL_VERIFIED, user.id)
        self.db.commit()
        return user

    def _handle_failed_login(self, user: User):
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        self._audit(AuditAction.FAILED_LOGIN, user.id, success=False,
                    error_message="Invalid password", attempts=user.failed_login_attempts)

        if user.failed_login_attempts >= settings.MAX_FAILED_LOGINS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            self._audit(AuditAction.ACCOUNT_LOCKED, user.id, success=False,
                        locked_until=user.locked_until.isoformat())
            logger.warning("Account %s locked after %d failed logins",
                           user.id, user.failed_login_attempts)

        self.db.commit()

    def _issue_tokens(self, user: User) -> TokenResponse:
        """New token pair; the refresh token replaces any live one. Commits."""
        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)
        self.db.commit()
        return TokenResponse(**tokens.model_dump(), user=UserResponse.from_orm(user))

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        token_payload = verify_token(refresh_token, TokenType.REFRESH)
        expires_at = token_payload.expires_at if token_payload else None
        if expires_at is None:
            expires_at = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # One live refresh token per user
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            expires_at=expires_at
        ))
