from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, JSON, Index
from datetime import datetime

from ..core.database import Base

class AuditAction:
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PASSWORD_RESET = "PASSWORD_RESET"
    FAILED_LOGIN = "FAILED_LOGIN"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    VIEW_PATIENT_DATA = "VIEW_PATIENT_DATA"
    UPDATE_PATIENT_DATA = "UPDATE_PATIENT_DATA"
    CREATE_APPOINTMENT = "CREATE_APPOINTMENT"
    UPDATE_APPOINTMENT = "UPDATE_APPOINTMENT"
    CANCEL_APPOINTMENT = "CANCEL_APPOINTMENT"
    RESCHEDULE_APPOINTMENT = "RESCHEDULE_APPOINTMENT"
    COMPLETE_APPOINTMENT = "COMPLETE_APPOINTMENT"
    ADD_PRESCRIPTION = "ADD_PRESCRIPTION"
    ADMIN_USER_UPDATE = "ADMIN_USER_UPDATE"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"

class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_user_timestamp", "user_id", "timestamp"),
        Index("ix_audit_logs_action_timestamp", "action", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    resource = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(50), nullable=True)
    method = Column(String(10), nullable=False)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    success = Column(Boolean, nullable=False, default=True, index=True)
    error_message = Column(String(500), nullable=True)
    meta = Column("metadata", JSON, default=dict)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', resource='{self.resource}')>"
