from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from fastapi import HTTPException, status
from datetime import datetime, timedelta
from typing import Optional, List, Tuple, Dict, Any
import logging

from ..core.database import apply_changes
from ..models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES, AWAITING_STATUSES
from ..models.clinic import Clinic
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.user import User
from ..models.audit_log import AuditAction
from ..schemas.doctor import DoctorProfileUpdate
from ..schemas.patient import PatientUpdate
from .audit_service import AuditService
from .patient_service import PatientService

logger = logging.getLogger(__name__)

class DoctorService:
    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    # Public directory

    def get(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        return doctor

    def list_doctors(
        self,
        specialty: Optional[str] = None,
        available: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Doctor], int]:
        query = self.db.query(Doctor).join(User, Doctor.user_id == User.id).filter(User.is_active == True)
        if specialty:
            query = query.filter(Doctor.specialization.ilike(f"%{specialty}%"))
        if available is not None:
            query = query.filter(Doctor.is_available == available)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Doctor.first_name.ilike(pattern),
                Doctor.last_name.ilike(pattern),
                Doctor.specialization.ilike(pattern),
            ))

        total = query.count()
        doctors = (
            query.order_by(Doctor.rating.desc(), Doctor.last_name.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return doctors, total

    # Own profile

    def profile_for(self, user: User) -> Doctor:
        if not user.doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor profile not found"
            )
        return user.doctor

    def update_profile(self, user: User, data: DoctorProfileUpdate) -> Doctor:
        doctor = self.profile_for(user)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("clinic_id") is not None:
            if not self.db.query(Clinic.id).filter(Clinic.id == changes["clinic_id"]).first():
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Clinic not found"
                )
        apply_changes(doctor, changes)
        self.db.commit()
        self.db.refresh(doctor)
        return doctor

    def set_availability(self, user: User, is_available: bool) -> Doctor:
        doctor = self.profile_for(user)
        doctor.is_available = is_available
        self.db.commit()
        self.db.refresh(doctor)
        logger.info("Doctor %s availability set to %s", doctor.id, is_available)
        return doctor

    # Dashboard

    def stats(self, user: User, now: Optional[datetime] = None) -> Dict[str, int]:
        doctor = self.profile_for(user)
        now = now or datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = today - timedelta(days=today.weekday())
        month_start = today.replace(day=1)

        base = self.db.query(Appointment).filter(Appointment.doctor_id == doctor.id)
        active = base.filter(Appointment.status.in_(ACTIVE_STATUSES))

        def count_between(start, end):
            return active.filter(
                Appointment.appointment_date >= start,
                Appointment.appointment_date < end,
            ).count()

        next_month = (month_start + timedelta(days=32)).replace(day=1)
        return {
            "today_appointments": count_between(today, today + timedelta(days=1)),
            "week_appointments": count_between(week_start, week_start + timedelta(days=7)),
            "month_appointments": count_between(month_start, next_month),
            "total_patients": base.with_entities(
                func.count(func.distinct(Appointment.patient_id))
            ).scalar() or 0,
            "completed_appointments": base.filter(
                Appointment.status == AppointmentStatus.COMPLETED
            ).count(),
            "cancelled_appointments": base.filter(
                Appointment.status == AppointmentStatus.CANCELLED
            ).count(),
            "total_appointments": base.count(),
        }

    def daily_appointments(self, user: User, day: Optional[datetime] = None) -> List[Appointment]:
        doctor = self.profile_for(user)
        day_start = (day or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.doctor_id == doctor.id,
                Appointment.appointment_date >= day_start,
                Appointment.appointment_date < day_start + timedelta(days=1),
                Appointment.status != AppointmentStatus.CANCELLED,
            )
            .order_by(Appointment.appointment_date.asc())
            .all()
        )

    def upcoming_appointments(
        self, user: User, page: int = 1, limit: int = 20
    ) -> Tuple[List[Appointment], int]:
        doctor = self.profile_for(user)
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_date >= datetime.utcnow(),
            Appointment.status.in_(AWAITING_STATUSES),
        )
        total = query.count()
        appointments = (
            query.order_by(Appointment.appointment_date.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return appointments, total

    # Patients

    def _patients_query(self, doctor: Doctor, search: Optional[str] = None):
        seen = self.db.query(Appointment.patient_id).filter(Appointment.doctor_id == doctor.id)
        query = self.db.query(Patient).filter(Patient.id.in_(seen))
        if search:
            pattern = f"%{search}%"
            query = query.join(User, Patient.user_id == User.id).filter(or_(
                Patient.first_name.ilike(pattern),
                Patient.last_name.ilike(pattern),
                User.email.ilike(pattern),
            ))
        return query

    def list_patients(
        self, user: User, search: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Patient], int]:
        doctor = self.profile_for(user)
        query = self._patients_query(doctor, search)
        total = query.count()
        patients = (
            query.order_by(Patient.last_name, Patient.first_name)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return patients, total

    def patient_summaries(
        self, user: User, search: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Dict[str, Any]], int]:
        doctor = self.profile_for(user)
        patients, total = self.list_patients(user, search, page, limit)
        now = datetime.utcnow()

        summaries = []
        for patient in patients:
            visits = self.db.query(Appointment).filter(
                Appointment.doctor_id == doctor.id,
                Appointment.patient_id == patient.id,
            )
            last_visit = visits.filter(
                Appointment.status == AppointmentStatus.COMPLETED
            ).order_by(Appointment.appointment_date.desc()).first()
            upcoming = visits.filter(
                Appointment.status.in_(AWAITING_STATUSES),
                Appointment.appointment_date >= now,
            ).order_by(Appointment.appointment_date.asc()).first()

            summaries.append({
                "id": patient.id,
                "full_name": patient.full_name,
                "email": patient.email,
                "phone_number": patient.phone_number,
                "age": patient.age,
                "gender": patient.gender,
                "last_visit": last_visit.appointment_date if last_visit else None,
                "last_diagnosis": last_visit.diagnosis if last_visit else None,
                "upcoming_appointment": upcoming.appointment_date if upcoming else None,
            })
        return summaries, total

    def get_patient(self, user: User, patient_id: int) -> Patient:
        """A patient record, visible only with shared appointment history."""
        doctor = self.profile_for(user)
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Patient not found"
            )

        history = self.db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.patient_id == patient.id,
        ).first()
        if not history and patient.created_by_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No appointment history with this patient"
            )

        self.audit.record(
            AuditAction.VIEW_PATIENT_DATA, "Patient",
            user_id=user.id, resource_id=patient.id, method="GET",
        )
        self.db.commit()
        return patient

    def update_patient(self, user: User, patient_id: int, data: PatientUpdate) -> Patient:
        patient = self.get_patient(user, patient_id)
        patient = PatientService(self.db).apply_update(patient, data)
        self.audit.record(
            AuditAction.UPDATE_PATIENT_DATA, "Patient",
            user_id=user.id, resource_id=patient.id, method="PATCH",
            meta={"fields": sorted(data.model_fields_set)},
        )
        self.db.commit()
        self.db.refresh(patient)
        return patient
