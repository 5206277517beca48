from sqlalchemy import Column, DateTime, String

from saas_billing_svc.models.base import Base, new_id, utcnow


class ProcessedWebhookEvent(Base):
    """
    Stripe event ids already applied to the local mirror.

    Written in the same transaction as the state change, so a failed event is never recorded.
    """
    __tablename__ = 'processed_webhook_events'

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String, unique=True, nullable=False)
    event_type = Column(String, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<ProcessedWebhookEvent(event_id={self.event_id}, type={self.event_type})>"
