from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String

from saas_billing_svc.models.base import Base, new_id, utcnow

INVOICE_STATUSES = ("draft", "open", "paid", "uncollectible", "void")


class Invoice(Base):
    """
    Billing outcome recorded from Stripe invoice events, keyed by the Stripe invoice id.
    """
    __tablename__ = 'invoices'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    stripe_invoice_id = Column(String, unique=True, nullable=False)
    amount_paid = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default='usd')
    status = Column(Enum(*INVOICE_STATUSES, name='invoice_status'), nullable=False)
    hosted_invoice_url = Column(String, nullable=True)
    invoice_pdf = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index('invoices_status_idx', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.stripe_invoice_id}, status={self.status}, amount_paid={self.amount_paid})>"
