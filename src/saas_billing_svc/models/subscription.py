from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, String

from saas_billing_svc.models.base import Base, new_id, utcnow

SUBSCRIPTION_STATUSES = ("active", "canceled", "incomplete", "past_due", "trialing", "unpaid")


class Subscription(Base):
    """
    Local mirror of a user's single Stripe subscription.

    Rows are never deleted; a deleted Stripe subscription is kept with status 'canceled'.
    """
    __tablename__ = 'subscriptions'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    stripe_subscription_id = Column(String, unique=True, nullable=False)
    stripe_price_id = Column(String, nullable=False)
    stripe_current_period_end = Column(DateTime(timezone=True), nullable=False)
    status = Column(Enum(*SUBSCRIPTION_STATUSES, name='subscription_status'), nullable=False)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    # created timestamp of the newest Stripe event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('subscriptions_status_idx', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.stripe_subscription_id}, status={self.status})>"
