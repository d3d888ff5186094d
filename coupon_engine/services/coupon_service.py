
import math
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Sequence
from datetime import date
from fastapi import HTTPException
from coupon_engine.logging_config import get_logger
from coupon_engine.models.coupon import Coupon, CouponApplication
from coupon_engine.models.order import Order
from coupon_engine.schemas.coupon import (
    CartLineItem, CouponCreate, CouponUpdate, CouponResponse, CouponStats, CouponValidationResult
)
from coupon_engine.services.coupon_helpers import (
    format_coupon_response, initial_status, validate_coupon_format
)
from coupon_engine.services.coupon_validation import UserUsageFacts, validate_coupon
from coupon_engine.services.coupon_validators import category_lookup_resolver
from coupon_engine.services.discount_calculator import D, round_rupee

logger = get_logger("coupon_service")

# Optional columns an admin update may reset to null
CLEARABLE_FIELDS = (
    "min_order_value", "max_discount", "usage_limit", "max_discount_items",
    "bogo_buy_quantity", "bogo_get_quantity",
)


class CouponService:
    """Service class for coupon persistence, usage facts and redemptions"""

    # ==================== READ ====================

    @staticmethod
    def get_coupon(db: Session, coupon_id: int) -> Optional[Coupon]:
        return db.query(Coupon).filter(Coupon.id == coupon_id).first()

    @staticmethod
    def find_by_code(db: Session, code: str) -> Optional[Coupon]:
        return db.query(Coupon).filter(func.upper(Coupon.code) == code.strip().upper()).first()

    @staticmethod
    def list_coupons(db: Session, page: int = 1, limit: int = 20,
                     status: Optional[str] = None, search: Optional[str] = None) -> Dict:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        q = db.query(Coupon)
        if status:
            q = q.filter(Coupon.status == status)
        if search:
            pattern = f"%{search}%"
            q = q.filter(or_(Coupon.code.ilike(pattern), Coupon.description.ilike(pattern)))

        total = q.count()
        coupons = q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return {
            "coupons": coupons,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    @staticmethod
    def get_active_coupons(db: Session, cart_subtotal: Optional[float] = None,
                           user_id: Optional[str] = None) -> List[dict]:
        coupons = db.query(Coupon).filter(Coupon.status == "active").all()

        if user_id:
            used = CouponService.usage_by_coupon(db, user_id)
            coupons = [c for c in coupons if used.get(c.id, 0) < c.usage_per_user]

        coupons.sort(key=lambda c: c.min_order_value or 0)
        return [format_coupon_response(c, cart_subtotal) for c in coupons]

    # ==================== USAGE FACTS ====================

    @staticmethod
    def count_completed_orders(db: Session, user_id: str) -> int:
        return db.query(func.count(Order.id)).filter(
            Order.user_id == user_id, Order.payment_status == "completed"
        ).scalar() or 0

    @staticmethod
    def count_user_usage(db: Session, coupon_id: int, user_id: str) -> int:
        return db.query(func.count(func.distinct(CouponApplication.order_id))).join(
            Order, Order.id == CouponApplication.order_id
        ).filter(
            CouponApplication.coupon_id == coupon_id, Order.user_id == user_id
        ).scalar() or 0

    @staticmethod
    def usage_by_coupon(db: Session, user_id: str) -> Dict[int, int]:
        rows = db.query(
            CouponApplication.coupon_id, func.count(func.distinct(CouponApplication.order_id))
        ).join(
            Order, Order.id == CouponApplication.order_id
        ).filter(Order.user_id == user_id).group_by(CouponApplication.coupon_id).all()
        return {coupon_id: count for coupon_id, count in rows}

    # ==================== VALIDATION ====================

    @staticmethod
    def validate_coupon(db: Session, code: str, cart_subtotal: float, user_id: str,
                        cart_items: Sequence[CartLineItem] = ()) -> CouponValidationResult:
        coupon = CouponService.find_by_code(db, code)
        if coupon is None:
            return validate_coupon(None, cart_subtotal, UserUsageFacts())

        usage = UserUsageFacts(
            completed_order_count=(
                CouponService.count_completed_orders(db, user_id) if coupon.first_order_only else 0
            ),
            coupon_usage_count=CouponService.count_user_usage(db, coupon.id, user_id),
        )

        # Categories travel with the cart lines; key them the way the resolver expects
        lookup = {}
        for item in cart_items:
            if not item.category_id:
                continue
            if item.type == "bundle" and item.bundle_id:
                lookup[item.bundle_id] = item.category_id
            elif item.type == "product" and item.product_id:
                lookup[f"product_{item.product_id}"] = item.category_id

        return validate_coupon(
            CouponResponse.model_validate(coupon),
            cart_subtotal,
            usage,
            cart_items,
            category_lookup_resolver(lookup),
        )

    # ==================== CREATE / UPDATE ====================

    @staticmethod
    def create_coupon(db: Session, coupon_data: CouponCreate, today: Optional[date] = None) -> Coupon:
        fields = coupon_data.model_dump()
        fields["code"] = CouponService._normalized_code(fields["code"])
        CouponService._validate_coupon_rules(fields)

        if CouponService.find_by_code(db, fields["code"]):
            raise HTTPException(status_code=409, detail="A coupon with this code already exists")

        db_coupon = Coupon(
            **fields,
            status=initial_status(fields["start_date"], today),
            usage_count=0,
        )
        db.add(db_coupon)
        db.commit()
        db.refresh(db_coupon)
        logger.info("Coupon created: %s (status: %s)", db_coupon.code, db_coupon.status)
        return db_coupon

    @staticmethod
    def update_coupon(db: Session, coupon_id: int, coupon_data: CouponUpdate,
                      today: Optional[date] = None) -> Optional[Coupon]:
        db_coupon = CouponService.get_coupon(db, coupon_id)
        if not db_coupon:
            return None

        updates = {
            key: value
            for key, value in coupon_data.model_dump(exclude_unset=True).items()
            if value is not None or key in CLEARABLE_FIELDS
        }
        if "code" in updates:
            updates["code"] = CouponService._normalized_code(updates["code"])
            existing = CouponService.find_by_code(db, updates["code"])
            if existing and existing.id != db_coupon.id:
                raise HTTPException(status_code=409, detail="A coupon with this code already exists")

        # Compute final fields then validate
        final = CouponResponse.model_validate(db_coupon).model_dump()
        final.update(updates)
        CouponService._validate_coupon_rules(final)

        # A future start date always wins over a requested status
        if "start_date" in updates or "end_date" in updates:
            if initial_status(final["start_date"], today) == "scheduled":
                updates["status"] = "scheduled"

        for key, value in updates.items():
            setattr(db_coupon, key, value)

        db.commit()
        db.refresh(db_coupon)
        logger.info("Coupon updated: %s", db_coupon.code)
        return db_coupon

    @staticmethod
    def toggle_status(db: Session, coupon_id: int, today: Optional[date] = None) -> Optional[Coupon]:
        db_coupon = CouponService.get_coupon(db, coupon_id)
        if not db_coupon:
            return None

        if db_coupon.status == "inactive":
            db_coupon.status = initial_status(db_coupon.start_date, today)
        else:
            db_coupon.status = "inactive"

        db.commit()
        db.refresh(db_coupon)
        logger.info("Coupon %s status toggled to %s", db_coupon.code, db_coupon.status)
        return db_coupon

    @staticmethod
    def refresh_statuses(db: Session, today: Optional[date] = None) -> int:
        """Bring stored statuses in line with the coupon dates."""
        today = today or date.today()
        updated = 0
        for coupon in db.query(Coupon).filter(Coupon.status.in_(("active", "scheduled"))).all():
            if coupon.end_date < today:
                coupon.status = "expired"
            elif coupon.status == "scheduled" and coupon.start_date <= today:
                coupon.status = "active"
            else:
                continue
            updated += 1

        db.commit()
        logger.info("Coupon status refresh: %d coupon(s) updated", updated)
        return updated

    # ==================== DELETE ====================

    @staticmethod
    def delete_coupon(db: Session, coupon_id: int) -> bool:
        db_coupon = CouponService.get_coupon(db, coupon_id)
        if not db_coupon:
            return False

        used = db.query(func.count(CouponApplication.id)).filter(
            CouponApplication.coupon_id == coupon_id
        ).scalar()
        if used:
            raise HTTPException(status_code=400, detail="Cannot delete coupon that has been used")

        db.delete(db_coupon)
        db.commit()
        logger.info("Coupon deleted: %s", coupon_id)
        return True

    # ==================== REDEMPTIONS ====================

    @staticmethod
    def record_redemption(db: Session, order_id: int, coupon_id: int, user_id: str,
                          discount_amount: int) -> CouponApplication:
        if not CouponService.get_coupon(db, coupon_id):
            raise HTTPException(status_code=404, detail="Coupon not found")
        if not db.query(Order).filter(Order.id == order_id).first():
            raise HTTPException(status_code=404, detail="Order not found")
        already = db.query(CouponApplication.id).filter(
            CouponApplication.order_id == order_id, CouponApplication.coupon_id == coupon_id
        ).first()
        if already:
            raise HTTPException(status_code=409, detail="Coupon already redeemed for this order")

        application = CouponApplication(
            order_id=order_id,
            coupon_id=coupon_id,
            user_id=user_id,
            discount_amount=discount_amount,
        )
        db.add(application)
        CouponService.increment_usage_count(db, coupon_id)
        db.commit()
        db.refresh(application)
        logger.info("Coupon %s redeemed by order %s", coupon_id, order_id)
        return application

    @staticmethod
    def increment_usage_count(db: Session, coupon_id: int) -> None:
        # Single UPDATE so concurrent redemptions cannot lose increments
        db.query(Coupon).filter(Coupon.id == coupon_id).update(
            {Coupon.usage_count: Coupon.usage_count + 1}, synchronize_session=False
        )

    @staticmethod
    def get_coupon_stats(db: Session, coupon_id: int) -> CouponStats:
        total_usage, total_discount = db.query(
            func.count(CouponApplication.id), func.coalesce(func.sum(CouponApplication.discount_amount), 0)
        ).filter(CouponApplication.coupon_id == coupon_id).one()
        total_discount = int(total_discount)
        return CouponStats(
            total_usage=total_usage,
            total_discount=total_discount,
            average_discount=round_rupee(D(total_discount) / total_usage) if total_usage else 0,
        )

    # ==================== RULES ====================

    @staticmethod
    def _normalized_code(code: str) -> str:
        check = validate_coupon_format(code)
        if not check.valid:
            raise HTTPException(status_code=400, detail=check.reason)
        return check.code

    @staticmethod
    def _validate_coupon_rules(fields: dict) -> None:
        if fields["discount_type"] == "Percent" and fields["discount_value"] > 100:
            raise HTTPException(status_code=400, detail="Percent discount cannot exceed 100")
        if fields["end_date"] < fields["start_date"]:
            raise HTTPException(status_code=400, detail="End date cannot be before start date")

        coupon_type = fields.get("coupon_type") or "cart_wide"
        if coupon_type in ("product_specific", "bogo") and not fields.get("eligible_product_ids"):
            raise HTTPException(status_code=400, detail=f"{coupon_type} coupons need eligible_product_ids")
        if coupon_type == "category_based" and not fields.get("eligible_category_ids"):
            raise HTTPException(status_code=400, detail="category_based coupons need eligible_category_ids")
        if coupon_type == "bogo":
            for key in ("bogo_buy_quantity", "bogo_get_quantity"):
                if not fields.get(key):
                    raise HTTPException(status_code=400, detail=f"Field '{key}' is required for bogo coupons")
