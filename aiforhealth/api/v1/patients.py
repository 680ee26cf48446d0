from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple

from ...core.database import get_db
from ...api.deps import get_staff_user, get_patient_user, pagination_params
from ...models.user import User
from ...schemas.common import Pagination
from ...schemas.patient import PatientCreate, PatientUpdate, PatientResponse, PatientListResponse
from ...services.patient_service import PatientService

router = APIRouter(prefix="/patients", tags=["Patients"])

@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    patient_data: PatientCreate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    return PatientResponse.from_orm(PatientService(db).create(patient_data, current_user))

@router.get("", response_model=PatientListResponse)
async def list_patients(
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    patients, total = PatientService(db).list_patients(search, page, limit)
    return PatientListResponse(
        patients=[PatientResponse.from_orm(p) for p in patients],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/me", response_model=PatientResponse)
async def get_own_profile(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    return PatientResponse.from_orm(PatientService(db).profile_for(current_user))

@router.put("/me", response_model=PatientResponse)
async def update_own_profile(
    patient_data: PatientUpdate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    return PatientResponse.from_orm(PatientService(db).update_own(current_user, patient_data))
