from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, String, Text

from saas_billing_svc.models.base import Base, new_id, utcnow


class Product(Base):
    """
    Price plan mirrored from the Stripe catalog. Globally readable while active.
    """
    __tablename__ = 'products'

    id = Column(String(36), primary_key=True, default=new_id)
    stripe_price_id = Column(String, unique=True, nullable=False)
    stripe_product_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)
    interval = Column(Enum('month', 'year', name='subscription_interval'), nullable=False)
    features = Column(JSON, nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product(name={self.name}, price_id={self.stripe_price_id})>"
