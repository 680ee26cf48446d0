from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Float, Enum as SQLEnum, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..core.database import Base

class MetricType(str, enum.Enum):
    BLOOD_PRESSURE = "blood_pressure"
    HEART_RATE = "heart_rate"
    WEIGHT = "weight"
    HEIGHT = "height"
    TEMPERATURE = "temperature"
    BLOOD_SUGAR = "blood_sugar"
    CHOLESTEROL = "cholesterol"
    BMI = "bmi"
    OXYGEN_SATURATION = "oxygen_saturation"
    CUSTOM = "custom"

class MetricStatus(str, enum.Enum):
    NORMAL = "normal"
    LOW = "low"
    HIGH = "high"
    CRITICAL = "critical"

class MetricTrend(str, enum.Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"

class HealthMetric(Base):
    __tablename__ = "health_metrics"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    related_appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)

    type = Column(SQLEnum(MetricType), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    status = Column(SQLEnum(MetricStatus), nullable=False, default=MetricStatus.NORMAL, index=True)
    trend = Column(SQLEnum(MetricTrend), nullable=True)
    recorded_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    notes = Column(String(500), nullable=True)

    # Reference range
    reference_min = Column(Float, nullable=True)
    reference_max = Column(Float, nullable=True)
    reference_unit = Column(String(20), nullable=True)

    # Device info
    device_name = Column(String(100), nullable=True)
    device_model = Column(String(100), nullable=True)
    device_accuracy = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])

    @property
    def has_reference_range(self) -> bool:
        return self.reference_min is not None and self.reference_max is not None

    @property
    def is_normal(self) -> bool:
        if not self.has_reference_range:
            return self.status == MetricStatus.NORMAL
        return self.reference_min <= self.value <= self.reference_max

    @property
    def formatted_value(self) -> str:
        return f"{self.value:g} {self.unit}"

    def classify(self):
        """Derive status from the reference range, if one is set."""
        if not self.has_reference_range:
            return
        if self.value < self.reference_min:
            self.status = MetricStatus.LOW
        elif self.value > self.reference_max:
            self.status = MetricStatus.HIGH
        else:
            self.status = MetricStatus.NORMAL

    def __repr__(self):
        return f"<HealthMetric(id={self.id}, type='{self.type}', value={self.value})>"

@event.listens_for(HealthMetric, "before_insert")
@event.listens_for(HealthMetric, "before_update")
def _classify_metric(mapper, connection, target):
    target.classify()
