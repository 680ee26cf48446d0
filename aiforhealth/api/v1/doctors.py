from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, List, Tuple

from ...core.database import get_db
from ...api.deps import get_doctor_user, pagination_params
from ...models.user import User
from ...schemas.appointment import AppointmentResponse, AppointmentListResponse
from ...schemas.common import Pagination, to_naive_utc
from ...schemas.doctor import (
    DoctorResponse, DoctorListResponse, DoctorAvailabilityUpdate, DoctorProfileUpdate,
    DoctorStats, DailyAppointments, PatientSummary
)
from ...schemas.patient import PatientCreate, PatientUpdate, PatientResponse, PatientListResponse
from ...services.doctor_service import DoctorService
from ...services.patient_service import PatientService

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("", response_model=DoctorListResponse)
async def list_doctors(
    specialty: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    """Public doctor directory."""
    page, limit = paging
    doctors, total = DoctorService(db).list_doctors(specialty, available, search, page, limit)
    return DoctorListResponse(
        doctors=[DoctorResponse.from_orm(d) for d in doctors],
        pagination=Pagination.build(page, limit, total),
    )

# Doctor dashboard; declared before /{doctor_id} so the static paths win

@router.get("/me", response_model=DoctorResponse)
async def get_own_profile(
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    return DoctorResponse.from_orm(DoctorService(db).profile_for(current_user))

@router.put("/me", response_model=DoctorResponse)
async def update_own_profile(
    profile_data: DoctorProfileUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    return DoctorResponse.from_orm(DoctorService(db).update_profile(current_user, profile_data))

@router.get("/stats", response_model=DoctorStats)
async def doctor_stats(
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    return DoctorService(db).stats(current_user)

@router.get("/appointments/daily", response_model=DailyAppointments)
async def daily_appointments(
    day: Optional[datetime] = None,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Today's (or the given day's) schedule."""
    appointments = DoctorService(db).daily_appointments(current_user, to_naive_utc(day))
    return DailyAppointments(
        count=len(appointments),
        appointments=[AppointmentResponse.from_orm(a) for a in appointments],
    )

@router.get("/appointments/upcoming", response_model=AppointmentListResponse)
async def upcoming_appointments(
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    appointments, total = DoctorService(db).upcoming_appointments(current_user, page, limit)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_orm(a) for a in appointments],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/patients", response_model=PatientListResponse)
async def list_my_patients(
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Patients with at least one appointment with the caller."""
    page, limit = paging
    patients, total = DoctorService(db).list_patients(current_user, search, page, limit)
    return PatientListResponse(
        patients=[PatientResponse.from_orm(p) for p in patients],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/patients/summaries", response_model=List[PatientSummary])
async def patient_summaries(
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Last completed visit and next appointment per patient."""
    page, limit = paging
    summaries, _ = DoctorService(db).patient_summaries(current_user, search, page, limit)
    return summaries

@router.post("/patients", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    patient_data: PatientCreate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Create a patient account from the doctor's office."""
    return PatientResponse.from_orm(PatientService(db).create(patient_data, current_user))

@router.get("/patients/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    return PatientResponse.from_orm(DoctorService(db).get_patient(current_user, patient_id))

@router.patch("/patients/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    patient_data: PatientUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    patient = DoctorService(db).update_patient(current_user, patient_id, patient_data)
    return PatientResponse.from_orm(patient)

@router.patch("/availability", response_model=DoctorResponse)
async def set_availability(
    availability: DoctorAvailabilityUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    doctor = DoctorService(db).set_availability(current_user, availability.is_available)
    return DoctorResponse.from_orm(doctor)

@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    return DoctorResponse.from_orm(DoctorService(db).get(doctor_id))
