from sqlalchemy import Column, DateTime, String

from saas_billing_svc.models.base import Base, new_id, utcnow


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    # Set once by the customer binder; at most one Stripe customer per user
    stripe_customer_id = Column(String, unique=True, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, stripe_customer_id={self.stripe_customer_id})>"
