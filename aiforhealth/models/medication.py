from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime

from ..core.database import Base

class Medication(Base):
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    prescribed_by_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    dosage = Column(String(50), nullable=False)
    frequency = Column(String(100), nullable=False)
    instructions = Column(String(500), nullable=True)

    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)
    next_dose = Column(DateTime, nullable=True, index=True)
    remaining_doses = Column(Integer, nullable=True)
    total_doses = Column(Integer, nullable=True)
    side_effects = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient")
    prescribed_by = relationship("Doctor")

    @property
    def is_expired(self) -> bool:
        return bool(self.end_date and self.end_date < datetime.utcnow())

    @property
    def is_due(self) -> bool:
        return bool(self.next_dose and self.next_dose <= datetime.utcnow())

    def __repr__(self):
        return f"<Medication(id={self.id}, name='{self.name}', patient_id={self.patient_id})>"
