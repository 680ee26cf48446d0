from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Tuple

from ...core.database import get_db
from ...api.deps import get_current_user, get_admin_user, pagination_params
from ...models.user import User
from ...schemas.appointment import SweepResult
from ...schemas.common import Pagination, MessageResponse
from ...schemas.notification import (
    NotificationResponse, NotificationListResponse, ProcessResult,
    ReminderSweepResult, PurgeResult
)
from ...services.appointment_service import AppointmentService
from ...services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    notifications, total, unread = NotificationService(db).list_for_user(
        current_user.id, page, limit, unread_only
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.from_orm(n) for n in notifications],
        unread_count=unread,
        pagination=Pagination.build(page, limit, total),
    )

@router.patch("/read-all", response_model=MessageResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = NotificationService(db).mark_all_read(current_user.id)
    return {"message": f"{count} notifications marked as read"}

# Scheduled jobs, triggered by an administrator or a cron caller

@router.post("/process", response_model=ProcessResult)
async def process_pending(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    processed, failed = NotificationService(db).process_pending()
    return ProcessResult(processed=processed, failed=failed)

@router.post("/check-upcoming", response_model=ReminderSweepResult)
async def check_upcoming(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return ReminderSweepResult(created=NotificationService(db).check_upcoming_appointments())

@router.post("/check-missed", response_model=SweepResult)
async def check_missed(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    ids = AppointmentService(db).mark_missed()
    return SweepResult(processed=len(ids), details=[{"appointment_id": i} for i in ids])

@router.delete("/expired", response_model=PurgeResult)
async def purge_expired(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return PurgeResult(deleted=NotificationService(db).purge_expired())

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = NotificationService(db).mark_read(notification_id, current_user.id)
    return NotificationResponse.from_orm(notification)

@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    NotificationService(db).delete(notification_id, current_user.id)
    return {"message": "Notification deleted"}
