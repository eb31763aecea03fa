from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.recovery_metric import RecoveryMetric


class RecoveryMetricRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, metric_date: date, metric_name: str) -> RecoveryMetric | None:
        return (
            self.db.query(RecoveryMetric)
            .filter(
                RecoveryMetric.metric_date == metric_date,
                RecoveryMetric.metric_name == metric_name,
            )
            .first()
        )

    def get_for_date(self, metric_date: date) -> list[RecoveryMetric]:
        return (
            self.db.query(RecoveryMetric)
            .filter(RecoveryMetric.metric_date == metric_date)
            .order_by(RecoveryMetric.metric_name.asc())
            .all()
        )

    def upsert(self, metric_date: date, metric_name: str, value: Decimal | int) -> RecoveryMetric:
        """Set the value for (metric_date, metric_name), inserting the row if missing."""
        metric = self.get(metric_date, metric_name)
        if metric is None:
            metric = RecoveryMetric(metric_date=metric_date, metric_name=metric_name)
            self.db.add(metric)
        metric.metric_value = Decimal(str(value))  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(metric)
        return metric

    def increment(self, metric_date: date, metric_name: str, amount: int) -> RecoveryMetric:
        metric = self.get(metric_date, metric_name)
        current = Decimal(str(metric.metric_value)) if metric is not None else Decimal("0")
        return self.upsert(metric_date, metric_name, current + amount)
