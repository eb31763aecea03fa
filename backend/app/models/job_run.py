"""JobRun model - append-only audit log of recovery job executions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class JobRun(Base):
    __tablename__ = "job_runs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    job_type = Column(String(50), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False, index=True)
    processed = Column(Integer, nullable=False, default=0)
    successful = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=False, default=list)
    job_metadata = Column(JSON, nullable=True)
