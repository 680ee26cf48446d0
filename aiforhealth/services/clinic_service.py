from sqlalchemy.orm import Session
from sqlalchemy import or_
from fastapi import HTTPException, status
from typing import Optional, List, Tuple
import logging

from ..core.database import apply_changes
from ..models.appointment import Appointment, ACTIVE_STATUSES
from ..models.clinic import Clinic, default_opening_hours
from ..models.doctor import Doctor
from ..schemas.clinic import ClinicCreate, ClinicUpdate

logger = logging.getLogger(__name__)

def _hours_payload(hours) -> dict:
    if hours is None:
        return default_opening_hours()
    return {day: value.model_dump() if value is not None else None for day, value in hours.items()}

class ClinicService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, clinic_id: int) -> Clinic:
        clinic = self.db.query(Clinic).filter(Clinic.id == clinic_id).first()
        if not clinic:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Clinic not found"
            )
        return clinic

    def list_clinics(
        self,
        search: Optional[str] = None,
        specialty: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Clinic], int]:
        query = self.db.query(Clinic)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Clinic.name.ilike(pattern), Clinic.address.ilike(pattern)))

        clinics = query.order_by(Clinic.rating.desc(), Clinic.name.asc()).all()

        # Specialties are a JSON list, filtered here to stay portable across databases
        if specialty:
            wanted = specialty.lower()
            clinics = [c for c in clinics if any(s.lower() == wanted for s in (c.specialties or []))]

        total = len(clinics)
        start = (page - 1) * limit
        return clinics[start:start + limit], total

    def create(self, data: ClinicCreate) -> Clinic:
        values = data.model_dump(exclude={"opening_hours"})
        clinic = Clinic(**values, opening_hours=_hours_payload(data.opening_hours))
        self.db.add(clinic)
        self.db.commit()
        self.db.refresh(clinic)
        logger.info("Created clinic %s (%s)", clinic.id, clinic.name)
        return clinic

    def update(self, clinic_id: int, data: ClinicUpdate) -> Clinic:
        clinic = self.get(clinic_id)
        changes = data.model_dump(exclude_unset=True, exclude={"opening_hours"})
        apply_changes(clinic, changes)
        if "opening_hours" in data.model_fields_set:
            clinic.opening_hours = _hours_payload(data.opening_hours)
        self.db.commit()
        self.db.refresh(clinic)
        return clinic

    def delete(self, clinic_id: int) -> None:
        clinic = self.get(clinic_id)
        booked = self.db.query(Appointment.id).filter(
            Appointment.clinic_id == clinic.id,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).first()
        if booked:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Clinic has active appointments"
            )

        self.db.query(Doctor).filter(Doctor.clinic_id == clinic.id).update({"clinic_id": None})
        self.db.query(Appointment).filter(Appointment.clinic_id == clinic.id).update({"clinic_id": None})
        self.db.delete(clinic)
        self.db.commit()
        logger.info("Deleted clinic %s", clinic_id)

    def list_doctors(
        self,
        clinic_id: int,
        specialty: Optional[str] = None,
        available: Optional[bool] = None,
    ) -> List[Doctor]:
        clinic = self.get(clinic_id)
        query = self.db.query(Doctor).filter(Doctor.clinic_id == clinic.id)
        if specialty:
            query = query.filter(Doctor.specialization.ilike(f"%{specialty}%"))
        if available is not None:
            query = query.filter(Doctor.is_available == available)
        return query.order_by(Doctor.last_name, Doctor.first_name).all()
