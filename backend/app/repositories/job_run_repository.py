from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.job_run import JobRun


class JobRunRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> JobRun:
        run = JobRun(**fields)
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def get_recent(self, job_type: str | None = None, limit: int = 50) -> list[JobRun]:
        query = self.db.query(JobRun)
        if job_type is not None:
            query = query.filter(JobRun.job_type == job_type)
        return query.order_by(JobRun.start_time.desc()).limit(limit).all()

    def get_last_successful_since(self, job_type: str, since: datetime) -> JobRun | None:
        return (
            self.db.query(JobRun)
            .filter(
                JobRun.job_type == job_type,
                JobRun.success == True,  # noqa: E712
                JobRun.start_time >= since,
            )
            .order_by(JobRun.start_time.desc())
            .first()
        )

    def count_since(self, since: datetime, success: bool | None = None) -> int:
        query = self.db.query(func.count(JobRun.id)).filter(JobRun.start_time >= since)
        if success is not None:
            query = query.filter(JobRun.success == success)
        return query.scalar() or 0
