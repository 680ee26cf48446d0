from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple

from ...core.database import get_db
from ...api.deps import get_current_user, get_staff_user, pagination_params
from ...models.health_metric import MetricType
from ...models.user import User
from ...schemas.common import Pagination, MessageResponse
from ...schemas.health import (
    MedicationCreate, MedicationUpdate, MedicationResponse, MedicationListResponse,
    ReminderCreate, ReminderUpdate, ReminderResponse, ReminderListResponse,
    MetricCreate, MetricUpdate, MetricResponse, MetricListResponse
)
from ...services.health_service import HealthService

router = APIRouter(prefix="/health", tags=["Health Records"])

# Medications

@router.get("/medications", response_model=MedicationListResponse)
async def list_medications(
    active_only: bool = False,
    patient_id: Optional[int] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    medications, total = HealthService(db).list_medications(
        current_user, active_only, patient_id, page, limit
    )
    return MedicationListResponse(
        medications=[MedicationResponse.from_orm(m) for m in medications],
        pagination=Pagination.build(page, limit, total),
    )

@router.post("/medications", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    return MedicationResponse.from_orm(HealthService(db).create_medication(current_user, medication_data))

@router.get("/medications/{medication_id}", response_model=MedicationResponse)
async def get_medication(
    medication_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return MedicationResponse.from_orm(HealthService(db).get_medication(current_user, medication_id))

@router.put("/medications/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: int,
    medication_data: MedicationUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    medication = HealthService(db).update_medication(current_user, medication_id, medication_data)
    return MedicationResponse.from_orm(medication)

@router.delete("/medications/{medication_id}", response_model=MessageResponse)
async def delete_medication(
    medication_id: int,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    HealthService(db).delete_medication(current_user, medication_id)
    return {"message": "Medication deleted"}

# Reminders

@router.get("/reminders", response_model=ReminderListResponse)
async def list_reminders(
    include_completed: bool = False,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    reminders, total = HealthService(db).list_reminders(current_user, include_completed, page, limit)
    return ReminderListResponse(
        reminders=[ReminderResponse.from_orm(r) for r in reminders],
        pagination=Pagination.build(page, limit, total),
    )

@router.post("/reminders", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    reminder_data: ReminderCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ReminderResponse.from_orm(HealthService(db).create_reminder(current_user, reminder_data))

@router.get("/reminders/{reminder_id}", response_model=ReminderResponse)
async def get_reminder(
    reminder_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ReminderResponse.from_orm(HealthService(db).get_reminder(current_user, reminder_id))

@router.put("/reminders/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: int,
    reminder_data: ReminderUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    reminder = HealthService(db).update_reminder(current_user, reminder_id, reminder_data)
    return ReminderResponse.from_orm(reminder)

@router.post("/reminders/{reminder_id}/complete", response_model=ReminderResponse)
async def complete_reminder(
    reminder_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Complete a reminder; recurring ones schedule their next occurrence."""
    return ReminderResponse.from_orm(HealthService(db).complete_reminder(current_user, reminder_id))

@router.delete("/reminders/{reminder_id}", response_model=MessageResponse)
async def delete_reminder(
    reminder_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    HealthService(db).delete_reminder(current_user, reminder_id)
    return {"message": "Reminder deleted"}

# Metrics

@router.get("/metrics", response_model=MetricListResponse)
async def list_metrics(
    user_id: Optional[int] = None,
    type: Optional[MetricType] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    metrics, total = HealthService(db).list_metrics(current_user, user_id, type, page, limit)
    return MetricListResponse(
        metrics=[MetricResponse.from_orm(m) for m in metrics],
        pagination=Pagination.build(page, limit, total),
    )

@router.post("/metrics", response_model=MetricResponse, status_code=status.HTTP_201_CREATED)
async def create_metric(
    metric_data: MetricCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return MetricResponse.from_orm(HealthService(db).create_metric(current_user, metric_data))

@router.get("/metrics/{metric_id}", response_model=MetricResponse)
async def get_metric(
    metric_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return MetricResponse.from_orm(HealthService(db).get_metric(current_user, metric_id))

@router.put("/metrics/{metric_id}", response_model=MetricResponse)
async def update_metric(
    metric_id: int,
    metric_data: MetricUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return MetricResponse.from_orm(HealthService(db).update_metric(current_user, metric_id, metric_data))

@router.delete("/metrics/{metric_id}", response_model=MessageResponse)
async def delete_metric(
    metric_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    HealthService(db).delete_metric(current_user, metric_id)
    return {"message": "Health metric deleted"}
