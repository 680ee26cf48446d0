from sqlalchemy.orm import Session
from sqlalchemy import or_
from fastapi import HTTPException, status
from typing import Optional, List, Tuple
import logging

from ..core.security import UserRole
from ..models.patient import Patient
from ..models.user import User
from ..schemas.auth import UserRegister
from ..schemas.patient import PatientCreate, PatientUpdate
from .auth_service import AuthService

logger = logging.getLogger(__name__)

class PatientService:
    def __init__(self, db: Session):
        self.db = db

    def profile_for(self, user: User) -> Patient:
        if not user.patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Patient profile not found"
            )
        return user.patient

    def create(self, data: PatientCreate, created_by: User) -> Patient:
        """Create a patient account on behalf of a doctor or administrator."""
        registration = UserRegister(
            email=data.email,
            password=data.password,
            role=UserRole.PATIENT,
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
            date_of_birth=data.date_of_birth,
            gender=data.gender,
        )
        user = AuthService(self.db).register_user(registration, created_by=created_by)
        patient = self.apply_update(user.patient, data)
        self.db.commit()
        self.db.refresh(patient)

        logger.info("User %s created patient %s", created_by.id, patient.id)
        return patient

    def list_patients(
        self, search: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Patient], int]:
        query = self.db.query(Patient).join(User, Patient.user_id == User.id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Patient.first_name.ilike(pattern),
                Patient.last_name.ilike(pattern),
                User.email.ilike(pattern),
                Patient.phone_number.ilike(pattern),
            ))

        total = query.count()
        patients = (
            query.order_by(Patient.last_name, Patient.first_name)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return patients, total

    def apply_update(self, patient: Patient, data) -> Patient:
        """Copy the profile fields that were sent onto ``patient``; the caller commits."""
        changes = data.model_dump(
            exclude_unset=True, exclude={"emergency_contact", "email", "password"}
        )
        for field, value in changes.items():
            if value is not None:
                setattr(patient, field, value)

        contact = data.emergency_contact
        if contact is not None:
            patient.emergency_contact_name = contact.name
            patient.emergency_contact_phone = contact.phone
            patient.emergency_contact_relationship = contact.relationship
        return patient

    def update_own(self, user: User, data: PatientUpdate) -> Patient:
        patient = self.apply_update(self.profile_for(user), data)
        self.db.commit()
        self.db.refresh(patient)
        return patient
