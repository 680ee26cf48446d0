from sqlalchemy.orm import Session
from sqlalchemy import func
from fastapi import HTTPException, status
from datetime import datetime, date, timedelta
from typing import Optional, List, Tuple, Dict, Any
import csv
import io
import logging

from ..core.config import settings
from ..core.security import UserRole
from ..models.appointment import (
    Appointment, AppointmentStatus, AppointmentType, ACTIVE_STATUSES, AWAITING_STATUSES
)
from ..models.audit_log import AuditAction
from ..models.clinic import Clinic, parse_hhmm
from ..models.doctor import Doctor
from ..models.notification import NotificationType
from ..models.patient import Patient
from ..models.user import User
from ..schemas.appointment import (
    AppointmentCreate, AppointmentUpdate, AppointmentComplete, BulkOperation,
    BulkFailure, BulkResult, AppointmentResponse
)
from .audit_service import AuditService
from .notification_service import NotificationService, APPOINTMENT_KIND

logger = logging.getLogger(__name__)

EXPORT_FIELDS = [
    "confirmation_number", "appointment_date", "end_time", "duration", "status",
    "type", "patient_name", "doctor_name", "reason", "notes", "diagnosis",
]

class AppointmentService:
    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        audit_service: Optional[AuditService] = None,
    ):
        self.db = db
        self.notifications = notification_service or NotificationService(db)
        self.audit = audit_service or AuditService(db)

    # Lookups and access control

    def find_conflicts(
        self,
        doctor_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        """Slot-holding appointments of the doctor overlapping [start, end)."""
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.appointment_date < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.all()

    def _ensure_slot_free(
        self, doctor_id: int, start: datetime, duration: int, exclude_id: Optional[int] = None
    ):
        end = start + timedelta(minutes=duration)
        if self.find_conflicts(doctor_id, start, end, exclude_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Time slot already booked"
            )

    def _lock_doctor(self, doctor_id: int) -> Doctor:
        # Row lock serializes concurrent bookings for the same doctor
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        return doctor

    def _ensure_doctor_bookable(self, doctor: Doctor):
        if not doctor.is_available or not doctor.user or not doctor.user.is_active:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Doctor is not available for booking"
            )

    def _ensure_clinic_open(self, clinic_id: Optional[int], start: datetime, duration: int):
        if clinic_id is None:
            return
        clinic = self.db.query(Clinic).filter(Clinic.id == clinic_id).first()
        if not clinic:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Clinic not found"
            )
        if not clinic.is_open_at(start, duration):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Clinic is closed at the requested time"
            )

    def _ensure_future(self, start: datetime):
        if start <= datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Appointment date must be in the future"
            )

    def _scoped(self, user: User):
        query = self.db.query(Appointment)
        if user.role == UserRole.PATIENT:
            patient_id = user.patient.id if user.patient else -1
            query = query.filter(Appointment.patient_id == patient_id)
        elif user.role == UserRole.DOCTOR:
            doctor_id = user.doctor.id if user.doctor else -1
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query

    def _is_participant(self, appointment: Appointment, user: User) -> bool:
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.PATIENT:
            return bool(user.patient and appointment.patient_id == user.patient.id)
        return bool(user.doctor and appointment.doctor_id == user.doctor.id)

    def _load(self, appointment_id: int, user: User, staff_only: bool = False) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        if not self._is_participant(appointment, user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to access this appointment"
            )
        if staff_only and user.role == UserRole.PATIENT:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the doctor or an administrator can do this"
            )
        if appointment.is_past_due():
            self._set_missed(appointment)
            self.db.commit()
            self.db.refresh(appointment)
        return appointment

    def _require_transition(self, appointment: Appointment, new_status: AppointmentStatus):
        if not appointment.can_transition_to(new_status):
            current = AppointmentStatus(appointment.status).value
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot change appointment status from {current} to {new_status.value}"
            )

    def _set_missed(self, appointment: Appointment):
        appointment.status = AppointmentStatus.MISSED
        self.notifications.missed_appointment(appointment)
        logger.info("Appointment %s marked as missed", appointment.id)

    # Booking

    def create(self, data: AppointmentCreate, user: User) -> Appointment:
        start = data.appointment_date
        self._ensure_future(start)

        if user.role == UserRole.PATIENT:
            patient = user.patient
            if not patient:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Patient profile not found"
                )
            if data.patient_id is not None and data.patient_id != patient.id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Patients can only book appointments for themselves"
                )
        else:
            if data.patient_id is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="patient_id is required"
                )
            patient = self.db.query(Patient).filter(Patient.id == data.patient_id).first()
            if not patient:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Patient not found"
                )

        doctor = self._lock_doctor(data.doctor_id)
        if user.role == UserRole.DOCTOR and (not user.doctor or user.doctor.id != doctor.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Doctors can only book into their own schedule"
            )
        self._ensure_doctor_bookable(doctor)

        clinic_id = data.clinic_id or doctor.clinic_id
        self._ensure_clinic_open(clinic_id, start, data.duration)
        self._ensure_slot_free(doctor.id, start, data.duration)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            clinic_id=clinic_id,
            appointment_date=start,
            duration=data.duration,
            type=data.type,
            reason=data.reason,
            notes=data.notes,
            is_emergency=data.is_emergency or data.type == AppointmentType.EMERGENCY,
            status=AppointmentStatus.SCHEDULED,
        )
        self.db.add(appointment)
        self.db.flush()

        self.notifications.appointment_confirmation(appointment)
        self.notifications.appointment_reminder(appointment)
        self.audit.record(
            AuditAction.CREATE_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id,
            meta={"doctor_id": doctor.id, "patient_id": patient.id},
        )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            "Appointment %s booked: doctor=%s patient=%s start=%s",
            appointment.confirmation_number, doctor.id, patient.id, start,
        )
        return appointment

    def get(self, appointment_id: int, user: User) -> Appointment:
        return self._load(appointment_id, user)

    def list_appointments(
        self,
        user: User,
        status_filter: Optional[AppointmentStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Appointment], int]:
        query = self._scoped(user)
        if status_filter:
            query = query.filter(Appointment.status == status_filter)
        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)

        limit = min(limit, settings.MAX_PAGE_SIZE)
        total = query.count()
        appointments = (
            query.order_by(Appointment.appointment_date.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        stale = [a for a in appointments if a.is_past_due()]
        for appointment in stale:
            self._set_missed(appointment)
        if stale:
            self.db.commit()

        return appointments, total

    def update(self, appointment_id: int, data: AppointmentUpdate, user: User) -> Appointment:
        appointment = self._load(appointment_id, user)
        if appointment.status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot update a completed or cancelled appointment"
            )

        changes = data.model_dump(exclude_unset=True)
        new_duration = changes.get("duration")
        if new_duration and new_duration != appointment.duration and appointment.status in ACTIVE_STATUSES:
            self._lock_doctor(appointment.doctor_id)
            self._ensure_clinic_open(appointment.clinic_id, appointment.appointment_date, new_duration)
            self._ensure_slot_free(
                appointment.doctor_id, appointment.appointment_date, new_duration,
                exclude_id=appointment.id,
            )

        for field, value in changes.items():
            if value is not None:
                setattr(appointment, field, value)

        self.audit.record(
            AuditAction.UPDATE_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id, method="PUT",
            meta={"fields": sorted(changes)},
        )
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    # Lifecycle

    def update_status(self, appointment_id: int, new_status: AppointmentStatus, user: User) -> Appointment:
        if new_status == AppointmentStatus.CANCELLED:
            return self.cancel(appointment_id, user)
        if new_status == AppointmentStatus.COMPLETED:
            return self.complete(appointment_id, user)
        if new_status == AppointmentStatus.RESCHEDULED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Use the reschedule endpoint to move an appointment"
            )

        appointment = self._load(appointment_id, user, staff_only=True)
        if appointment.status == new_status:
            return appointment
        self._require_transition(appointment, new_status)

        if new_status == AppointmentStatus.MISSED:
            self._set_missed(appointment)
        else:
            appointment.status = new_status

        self.audit.record(
            AuditAction.UPDATE_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id, method="PATCH",
            meta={"status": new_status.value},
        )
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def confirm(self, appointment_id: int, user: User) -> Appointment:
        appointment = self._load(appointment_id, user, staff_only=True)
        self._require_transition(appointment, AppointmentStatus.CONFIRMED)
        appointment.status = AppointmentStatus.CONFIRMED
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def start(self, appointment_id: int, user: User) -> Appointment:
        appointment = self._load(appointment_id, user, staff_only=True)
        self._require_transition(appointment, AppointmentStatus.IN_PROGRESS)
        appointment.status = AppointmentStatus.IN_PROGRESS
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def cancel(self, appointment_id: int, user: User, reason: Optional[str] = None) -> Appointment:
        appointment = self._load(appointment_id, user)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Appointment is already cancelled"
            )
        self._require_transition(appointment, AppointmentStatus.CANCELLED)

        notice = settings.CANCEL_NOTICE_HOURS
        if user.role == UserRole.PATIENT and not appointment.can_be_cancelled(notice):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Appointments must be cancelled at least {notice} hours in advance"
            )

        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancellation_reason = reason
        appointment.cancelled_at = datetime.utcnow()

        self.notifications.appointment_cancellation(appointment, reason)
        self.audit.record(
            AuditAction.CANCEL_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id,
            meta={"reason": reason},
        )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Appointment %s cancelled by user %s", appointment.id, user.id)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        user: User,
        new_date: datetime,
        reason: Optional[str] = None,
    ) -> Appointment:
        appointment = self._load(appointment_id, user)
        self._require_transition(appointment, AppointmentStatus.RESCHEDULED)

        notice = settings.RESCHEDULE_NOTICE_HOURS
        if user.role == UserRole.PATIENT and not appointment.can_be_rescheduled(notice):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Appointments must be rescheduled at least {notice} hours in advance"
            )
        self._ensure_future(new_date)

        doctor = self._lock_doctor(appointment.doctor_id)
        self._ensure_doctor_bookable(doctor)
        self._ensure_clinic_open(appointment.clinic_id, new_date, appointment.duration)
        self._ensure_slot_free(doctor.id, new_date, appointment.duration, exclude_id=appointment.id)

        previous_date = appointment.appointment_date
        appointment.appointment_date = new_date
        appointment.end_time = appointment.computed_end_time()
        appointment.status = AppointmentStatus.RESCHEDULED
        appointment.reschedule_reason = reason
        appointment.rescheduled_at = datetime.utcnow()
        appointment.reminder_sent = False

        self.notifications.appointment_rescheduled(appointment, previous_date)
        self.audit.record(
            AuditAction.RESCHEDULE_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id,
            meta={"from": previous_date.isoformat(), "to": new_date.isoformat()},
        )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Appointment %s moved from %s to %s", appointment.id, previous_date, new_date)
        return appointment

    def complete(
        self,
        appointment_id: int,
        user: User,
        data: Optional[AppointmentComplete] = None,
    ) -> Appointment:
        appointment = self._load(appointment_id, user, staff_only=True)
        if appointment.status != AppointmentStatus.IN_PROGRESS:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Only in-progress appointments can be completed"
            )

        data = data or AppointmentComplete()
        appointment.status = AppointmentStatus.COMPLETED
        appointment.completed_at = datetime.utcnow()
        if data.notes:
            appointment.notes = data.notes
        if data.diagnosis:
            appointment.diagnosis = data.diagnosis
        if data.prescription:
            appointment.prescription = data.prescription
            self.notifications.create(
                user_id=appointment.patient.user_id,
                title="Prescription Ready",
                message=f"A prescription from your visit on "
                        f"{appointment.appointment_date.strftime('%Y-%m-%d')} is ready.",
                type=NotificationType.PRESCRIPTION_READY,
                related_kind=APPOINTMENT_KIND,
                related_id=appointment.id,
            )
            self.audit.record(
                AuditAction.ADD_PRESCRIPTION, APPOINTMENT_KIND,
                user_id=user.id, resource_id=appointment.id,
            )

        self.audit.record(
            AuditAction.COMPLETE_APPOINTMENT, APPOINTMENT_KIND,
            user_id=user.id, resource_id=appointment.id,
        )
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def mark_missed(self, now: Optional[datetime] = None) -> List[int]:
        """Move every waiting appointment whose slot has ended to missed."""
        now = now or datetime.utcnow()
        overdue = self.db.query(Appointment).filter(
            Appointment.status.in_(AWAITING_STATUSES),
            Appointment.end_time <= now,
        ).all()

        for appointment in overdue:
            self._set_missed(appointment)
        self.db.commit()

        logger.info("Missed appointment sweep: %d appointments", len(overdue))
        return [a.id for a in overdue]

    # Availability

    def check_availability(
        self, doctor_id: int, start: datetime, duration: int = 30
    ) -> Tuple[bool, List[int]]:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        end = start + timedelta(minutes=duration)
        conflicts = [a.id for a in self.find_conflicts(doctor_id, start, end)]
        available = bool(doctor.is_available) and not conflicts and start > datetime.utcnow()
        if available and doctor.clinic:
            available = doctor.clinic.is_open_at(start, duration)
        return available, conflicts

    def available_slots(
        self,
        doctor_id: int,
        day: date,
        duration: int = 30,
        clinic_id: Optional[int] = None,
    ) -> List[datetime]:
        """Free start times on ``day``, stepping by ``duration`` through opening hours."""
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        if not doctor.is_available:
            return []

        clinic_id = clinic_id or doctor.clinic_id
        if clinic_id:
            clinic = self.db.query(Clinic).filter(Clinic.id == clinic_id).first()
            if not clinic:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Clinic not found"
                )
            hours = clinic.hours_for(day) if clinic.is_open else None
            if hours is None:
                return []
            opens, closes = hours
        else:
            opens = parse_hhmm(settings.DEFAULT_DAY_START)
            closes = parse_hhmm(settings.DEFAULT_DAY_END)

        day_start = datetime.combine(day, opens)
        day_end = datetime.combine(day, closes)
        booked = self.find_conflicts(doctor_id, day_start, day_end)
        now = datetime.utcnow()

        slots = []
        slot = day_start
        step = timedelta(minutes=duration)
        while slot + step <= day_end:
            slot_end = slot + step
            taken = any(a.appointment_date < slot_end and a.end_time > slot for a in booked)
            if not taken and slot > now:
                slots.append(slot)
            slot = slot_end
        return slots

    # Reporting

    def stats(
        self,
        user: User,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        doctor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        query = self._scoped(user)
        if doctor_id is not None and user.role == UserRole.ADMIN:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)

        rows = query.with_entities(Appointment.status, func.count(Appointment.id)).group_by(
            Appointment.status
        ).all()
        by_status = {s.value: 0 for s in AppointmentStatus}
        for row_status, count in rows:
            by_status[AppointmentStatus(row_status).value] = count
        return {"total": sum(by_status.values()), "by_status": by_status}

    def bulk(self, operation: BulkOperation, user: User) -> BulkResult:
        successful, failed = [], []
        for item in operation.appointments:
            try:
                if operation.operation == "cancel":
                    appointment = self.cancel(item.id, user, item.reason)
                else:
                    appointment = self.complete(item.id, user, item.data)
            except HTTPException as e:
                self.db.rollback()
                failed.append(BulkFailure(id=item.id, reason=str(e.detail)))
                continue
            successful.append(AppointmentResponse.from_orm(appointment))

        logger.info(
            "Bulk %s by user %s: %d ok, %d failed",
            operation.operation, user.id, len(successful), len(failed),
        )
        return BulkResult(successful=successful, failed=failed)

    def export(
        self,
        user: User,
        fmt: str = "json",
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        """Rows for the caller's appointments, as a list of dicts or a CSV string."""
        query = self._scoped(user)
        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)

        rows = []
        for a in query.order_by(Appointment.appointment_date.asc()).all():
            rows.append({
                "confirmation_number": a.confirmation_number,
                "appointment_date": a.appointment_date.isoformat(),
                "end_time": a.end_time.isoformat(),
                "duration": a.duration,
                "status": AppointmentStatus(a.status).value,
                "type": AppointmentType(a.type).value,
                "patient_name": a.patient.full_name if a.patient else None,
                "doctor_name": a.doctor.full_name if a.doctor else None,
                "reason": a.reason,
                "notes": a.notes,
                "diagnosis": a.diagnosis,
            })

        if fmt != "csv":
            return rows

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()
