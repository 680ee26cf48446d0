from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional, List, Tuple

from ...core.database import get_db
from ...api.deps import get_admin_user, pagination_params
from ...models.user import User
from ...schemas.clinic import ClinicCreate, ClinicUpdate, ClinicResponse, ClinicListResponse
from ...schemas.common import Pagination, MessageResponse
from ...schemas.doctor import DoctorResponse
from ...services.clinic_service import ClinicService

router = APIRouter(prefix="/clinics", tags=["Clinics"])

@router.get("", response_model=ClinicListResponse)
async def list_clinics(
    search: Optional[str] = None,
    specialty: Optional[str] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    """Public clinic directory, best rated first."""
    page, limit = paging
    clinics, total = ClinicService(db).list_clinics(search, specialty, page, limit)
    return ClinicListResponse(
        clinics=[ClinicResponse.from_orm(c) for c in clinics],
        pagination=Pagination.build(page, limit, total),
    )

@router.post("", response_model=ClinicResponse, status_code=status.HTTP_201_CREATED)
async def create_clinic(
    clinic_data: ClinicCreate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return ClinicResponse.from_orm(ClinicService(db).create(clinic_data))

@router.get("/{clinic_id}", response_model=ClinicResponse)
async def get_clinic(clinic_id: int, db: Session = Depends(get_db)):
    return ClinicResponse.from_orm(ClinicService(db).get(clinic_id))

@router.put("/{clinic_id}", response_model=ClinicResponse)
async def update_clinic(
    clinic_id: int,
    clinic_data: ClinicUpdate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return ClinicResponse.from_orm(ClinicService(db).update(clinic_id, clinic_data))

@router.delete("/{clinic_id}", response_model=MessageResponse)
async def delete_clinic(
    clinic_id: int,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    ClinicService(db).delete(clinic_id)
    return {"message": "Clinic deleted"}

@router.get("/{clinic_id}/doctors", response_model=List[DoctorResponse])
async def list_clinic_doctors(
    clinic_id: int,
    specialty: Optional[str] = None,
    available: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """Doctors working at a clinic."""
    doctors = ClinicService(db).list_doctors(clinic_id, specialty, available)
    return [DoctorResponse.from_orm(d) for d in doctors]
