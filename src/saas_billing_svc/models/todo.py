from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from saas_billing_svc.models.base import Base, new_id, utcnow


class Todo(Base):
    __tablename__ = 'todos'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
