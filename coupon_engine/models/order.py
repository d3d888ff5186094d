
from sqlalchemy import Column, Integer, String, Float, Enum, DateTime
from sqlalchemy.sql import func
from coupon_engine.database import Base

PaymentStatuses = ("pending", "completed", "failed", "refunded")


class Order(Base):
    """Checkout orders, reduced to the fields coupon rules read."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    payment_status = Column(Enum(*PaymentStatuses, name="payment_status"), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
