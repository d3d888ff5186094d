
from sqlalchemy import (
    Column, Integer, String, Text, Float, Enum, Boolean, JSON, Date, DateTime, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coupon_engine.database import Base

CouponTypes = ("cart_wide", "product_specific", "category_based", "bogo")
DiscountTypes = ("Percent", "Fixed")
CouponStatuses = ("active", "inactive", "expired", "scheduled")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)

    discount_type = Column(Enum(*DiscountTypes, name="discount_type"), nullable=False)
    discount_value = Column(Float, nullable=False)
    min_order_value = Column(Float, nullable=True)
    max_discount = Column(Float, nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Enum(*CouponStatuses, name="coupon_status"), nullable=False, default="active", index=True)

    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    usage_per_user = Column(Integer, nullable=False, default=1)

    coupon_type = Column(Enum(*CouponTypes, name="coupon_type"), nullable=False, default="cart_wide")
    eligible_product_ids = Column(JSON, nullable=False, default=list)
    eligible_category_ids = Column(JSON, nullable=False, default=list)
    bogo_buy_quantity = Column(Integer, nullable=True)
    bogo_get_quantity = Column(Integer, nullable=True)
    bogo_discount_percent = Column(Float, nullable=False, default=100)
    max_discount_items = Column(Integer, nullable=True)
    first_order_only = Column(Boolean, nullable=False, default=False)
    # Stored for forward compatibility; no rule reads it yet
    exclude_sale_items = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    applications = relationship("CouponApplication", back_populates="coupon")

    __table_args__ = (
        Index("ix_coupons_status_type", "status", "coupon_type"),
    )


class CouponApplication(Base):
    """One redemption of a coupon by an order."""
    __tablename__ = "coupon_applications"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    discount_amount = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())

    coupon = relationship("Coupon", back_populates="applications")

    __table_args__ = (
        UniqueConstraint("order_id", "coupon_id", name="uq_coupon_applications_order_coupon"),
    )
