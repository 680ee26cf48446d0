from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any

from .auth import UserResponse
from .common import Pagination

class UserListResponse(BaseModel):
    users: List[UserResponse]
    pagination: Pagination

class UserStatusUpdate(BaseModel):
    is_active: bool

class AuditLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    resource: str
    resource_id: Optional[str] = None
    method: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    timestamp: datetime

    class Config:
        from_attributes = True

class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    pagination: Pagination

class Analytics(BaseModel):
    users_by_role: Dict[str, int]
    total_users: int
    active_users: int
    appointments_by_status: Dict[str, int]
    total_appointments: int
    total_clinics: int
