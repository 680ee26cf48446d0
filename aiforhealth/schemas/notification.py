from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any

from ..models.notification import NotificationType, NotificationStatus, NotificationChannel
from .common import Pagination

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: NotificationType
    status: NotificationStatus
    channel: NotificationChannel
    related_kind: Optional[str] = None
    related_id: Optional[int] = None
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    is_unread: bool
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int
    pagination: Pagination

class ProcessResult(BaseModel):
    processed: int
    failed: int

class ReminderSweepResult(BaseModel):
    created: int

class PurgeResult(BaseModel):
    deleted: int
