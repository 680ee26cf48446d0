from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional, Tuple

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import get_admin_user, pagination_params
from ...models.user import User
from ...schemas.admin import (
    UserListResponse, UserStatusUpdate, AuditLogResponse, AuditLogListResponse, Analytics
)
from ...schemas.auth import UserResponse
from ...schemas.common import Pagination
from ...schemas.doctor import DoctorListResponse, DoctorResponse
from ...schemas.notification import PurgeResult
from ...services.admin_service import AdminService
from ...services.audit_service import AuditService
from ...services.doctor_service import DoctorService

router = APIRouter(prefix="/admin", tags=["Administration"])

@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """List all users (admin only)."""
    page, limit = paging
    users, total = AdminService(db).list_users(role, is_active, search, page, limit)
    return UserListResponse(
        users=[UserResponse.from_orm(u) for u in users],
        pagination=Pagination.build(page, limit, total),
    )

@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    status_data: UserStatusUpdate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Activate or deactivate user (admin only)."""
    user = AdminService(db).set_user_active(current_user, user_id, status_data.is_active)
    return UserResponse.from_orm(user)

@router.get("/doctors", response_model=DoctorListResponse)
async def list_doctors(
    specialty: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    doctors, total = DoctorService(db).list_doctors(specialty, available, search, page, limit)
    return DoctorListResponse(
        doctors=[DoctorResponse.from_orm(d) for d in doctors],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/analytics", response_model=Analytics)
async def analytics(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return AdminService(db).analytics()

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    logs, total = AuditService(db).list_logs(user_id, action, page, limit)
    return AuditLogListResponse(
        logs=[AuditLogResponse.from_orm(entry) for entry in logs],
        pagination=Pagination.build(page, limit, total),
    )

@router.delete("/audit-logs/expired", response_model=PurgeResult)
async def purge_audit_logs(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return PurgeResult(deleted=AuditService(db).purge_expired())
