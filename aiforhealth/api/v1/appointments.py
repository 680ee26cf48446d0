from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from datetime import datetime, date, timedelta
from typing import Optional, Literal, Tuple

from ...core.database import get_db
from ...api.deps import get_current_user, get_staff_user, get_admin_user, pagination_params
from ...models.appointment import AppointmentStatus
from ...models.user import User
from ...schemas.appointment import (
    AppointmentCreate, AppointmentUpdate, AppointmentStatusUpdate, AppointmentCancel,
    AppointmentReschedule, AppointmentComplete, AppointmentResponse, AppointmentListResponse,
    AvailabilityResponse, SlotsResponse, AppointmentStats, BulkOperation, BulkResult, SweepResult
)
from ...schemas.common import Pagination, to_naive_utc
from ...services.appointment_service import AppointmentService

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Book an appointment. Patients book for themselves, staff for a given patient."""
    appointment = AppointmentService(db).create(appointment_data, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's appointments ordered by start time."""
    page, limit = paging
    appointments, total = AppointmentService(db).list_appointments(
        current_user, status_filter, to_naive_utc(start_date), to_naive_utc(end_date), page, limit
    )
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_orm(a) for a in appointments],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/availability", response_model=AvailabilityResponse)
async def check_availability(
    doctor_id: int,
    start: datetime = Query(..., alias="date"),
    duration: int = Query(30, ge=15, le=120),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Whether the doctor is free for the given slot."""
    start = to_naive_utc(start)
    available, conflicts = AppointmentService(db).check_availability(doctor_id, start, duration)
    return AvailabilityResponse(
        doctor_id=doctor_id,
        start=start,
        end=start + timedelta(minutes=duration),
        available=available,
        conflicts=conflicts,
    )

@router.get("/slots", response_model=SlotsResponse)
async def available_slots(
    doctor_id: int,
    day: date = Query(..., alias="date"),
    duration: int = Query(30, ge=15, le=120),
    clinic_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Free start times for a doctor on one day."""
    slots = AppointmentService(db).available_slots(doctor_id, day, duration, clinic_id)
    return SlotsResponse(doctor_id=doctor_id, date=day, duration=duration, slots=slots)

@router.get("/stats", response_model=AppointmentStats)
async def appointment_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    doctor_id: Optional[int] = None,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Appointment counts by status."""
    return AppointmentService(db).stats(
        current_user, to_naive_utc(start_date), to_naive_utc(end_date), doctor_id
    )

@router.post("/bulk", response_model=BulkResult)
async def bulk_operation(
    operation: BulkOperation,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Cancel or complete several appointments, reporting each outcome."""
    return AppointmentService(db).bulk(operation, current_user)

@router.get("/export")
async def export_appointments(
    format: Literal["json", "csv"] = "json",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Export appointments as JSON or CSV."""
    data = AppointmentService(db).export(
        current_user, format, to_naive_utc(start_date), to_naive_utc(end_date)
    )
    if format == "csv":
        filename = f"appointments-{datetime.utcnow().strftime('%Y%m%d')}.csv"
        return Response(
            content=data,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return {"appointments": data, "count": len(data)}

@router.post("/sweep-missed", response_model=SweepResult)
async def sweep_missed(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Mark past-due waiting appointments as missed."""
    ids = AppointmentService(db).mark_missed()
    return SweepResult(processed=len(ids), details=[{"appointment_id": i} for i in ids])

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).get(appointment_id, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    update_data: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update reason, notes, type or duration."""
    appointment = AppointmentService(db).update(appointment_id, update_data, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    status_data: AppointmentStatusUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).update_status(appointment_id, status_data.status, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).confirm(appointment_id, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: int,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).start(appointment_id, current_user)
    return AppointmentResponse.from_orm(appointment)

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    cancel_data: Optional[AppointmentCancel] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    reason = cancel_data.reason if cancel_data else None
    appointment = AppointmentService(db).cancel(appointment_id, current_user, reason)
    return AppointmentResponse.from_orm(appointment)

@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    reschedule_data: AppointmentReschedule,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).reschedule(
        appointment_id, current_user, reschedule_data.new_date, reschedule_data.reason
    )
    return AppointmentResponse.from_orm(appointment)

@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    complete_data: Optional[AppointmentComplete] = None,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).complete(appointment_id, current_user, complete_data)
    return AppointmentResponse.from_orm(appointment)
