from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple, List
import logging

from ..core.config import settings
from ..models.audit_log import AuditLog

logger = logging.getLogger(__name__)

class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        resource: str,
        user_id: Optional[int] = None,
        resource_id: Optional[Any] = None,
        method: str = "POST",
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Add an audit entry to the session; the caller commits."""
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            method=method,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
            success=success,
            error_message=error_message[:500] if error_message else None,
            meta=meta or {},
        )
        self.db.add(entry)
        logger.info(
            "audit action=%s resource=%s id=%s user=%s success=%s",
            action, resource, entry.resource_id, user_id, success,
        )
        return entry

    def list_logs(
        self,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[AuditLog], int]:
        query = self.db.query(AuditLog)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)

        total = query.count()
        logs = (
            query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return logs, total

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete entries older than the retention period."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=settings.AUDIT_LOG_RETENTION_DAYS)
        deleted = self.db.query(AuditLog).filter(
            AuditLog.timestamp < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info("Purged %d audit log entries older than %s", deleted, cutoff)
        return deleted
