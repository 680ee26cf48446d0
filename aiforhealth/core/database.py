from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator
import redis
from .config import settings

database_url = settings.get_database_url

if database_url.startswith("sqlite"):
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
    )
else:
    # PostgreSQL with connection pool settings
    engine = create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Connections are opened lazily on the first command
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

# Database initialization
def init_db():
    """Initialize database tables."""
    # Register every model on Base.metadata
    from ..models import (  # noqa: F401
        user, patient, doctor, clinic, appointment, notification,
        medication, health_metric, health_reminder, ai_conversation, audit_log,
    )
    Base.metadata.create_all(bind=engine)

def apply_changes(instance, changes: dict) -> None:
    """Copy partial-update values onto a model; null never overwrites a NOT NULL column."""
    columns = instance.__table__.columns
    for field, value in changes.items():
        if value is None and field in columns and not columns[field].nullable:
            continue
        setattr(instance, field, value)
