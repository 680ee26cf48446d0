from sqlalchemy.orm import Session
from sqlalchemy import func
from fastapi import HTTPException, status
from typing import Optional, List, Tuple, Dict, Any
import logging

from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus
from ..models.audit_log import AuditAction
from ..models.clinic import Clinic
from ..models.user import User, RefreshToken
from .audit_service import AuditService

logger = logging.getLogger(__name__)

class AdminService:
    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def list_users(
        self,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        if search:
            query = query.filter(User.email.ilike(f"%{search}%"))

        total = query.count()
        users = query.order_by(User.id).offset((page - 1) * limit).limit(limit).all()
        return users, total

    def set_user_active(self, admin: User, user_id: int, is_active: bool) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        if user.id == admin.id and not is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Administrators cannot deactivate their own account"
            )

        user.is_active = is_active
        if not is_active:
            self.db.query(RefreshToken).filter(
                RefreshToken.user_id == user.id
            ).update({"is_revoked": True})

        self.audit.record(
            AuditAction.ADMIN_USER_UPDATE, "User",
            user_id=admin.id, resource_id=user.id, method="PATCH",
            meta={"is_active": is_active},
        )
        self.db.commit()
        self.db.refresh(user)
        logger.info("Admin %s set user %s active=%s", admin.id, user.id, is_active)
        return user

    def analytics(self) -> Dict[str, Any]:
        users_by_role = {r.value: 0 for r in UserRole}
        for role, count in self.db.query(User.role, func.count(User.id)).group_by(User.role).all():
            users_by_role[UserRole(role).value] = count

        appointments_by_status = {s.value: 0 for s in AppointmentStatus}
        rows = self.db.query(Appointment.status, func.count(Appointment.id)).group_by(
            Appointment.status
        ).all()
        for row_status, count in rows:
            appointments_by_status[AppointmentStatus(row_status).value] = count

        return {
            "users_by_role": users_by_role,
            "total_users": sum(users_by_role.values()),
            "active_users": self.db.query(User).filter(User.is_active == True).count(),
            "appointments_by_status": appointments_by_status,
            "total_appointments": sum(appointments_by_status.values()),
            "total_clinics": self.db.query(Clinic).count(),
        }
