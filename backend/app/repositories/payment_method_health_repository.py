from uuid import UUID

from sqlalchemy.orm import Session

from app.models.payment_method_health import PaymentMethodHealth


class PaymentMethodHealthRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: UUID, payment_method_id: str) -> PaymentMethodHealth | None:
        return (
            self.db.query(PaymentMethodHealth)
            .filter(
                PaymentMethodHealth.customer_id == customer_id,
                PaymentMethodHealth.payment_method_id == payment_method_id,
            )
            .first()
        )

    def get_or_create(self, customer_id: UUID, payment_method_id: str) -> PaymentMethodHealth:
        health = self.get(customer_id, payment_method_id)
        if health is None:
            health = PaymentMethodHealth(
                customer_id=customer_id,
                payment_method_id=payment_method_id,
                success_count=0,
                failure_count=0,
                common_failure_reasons=[],
            )
            self.db.add(health)
            self.db.flush()
        return health

    def save(self, health: PaymentMethodHealth) -> PaymentMethodHealth:
        self.db.commit()
        self.db.refresh(health)
        return health
