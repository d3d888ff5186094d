
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from coupon_engine.database import get_db
from coupon_engine.logging_config import get_logger
from coupon_engine.schemas.coupon import (
    ValidateCouponRequest, ValidateCouponResponse, ValidateCouponData, AppliedCouponSummary,
    ActiveCouponsResponse, CouponUsageResponse, RedemptionCreate, RedemptionResponse
)
from coupon_engine.services.coupon_helpers import format_amount, validate_coupon_format
from coupon_engine.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])

logger = get_logger("routers.coupons")


@router.post("/validate", response_model=ValidateCouponResponse)
def validate_coupon(payload: ValidateCouponRequest, db: Session = Depends(get_db)):
    format_check = validate_coupon_format(payload.code)
    if not format_check.valid:
        raise HTTPException(
            status_code=400,
            detail={"message": format_check.reason, "code": "INVALID_FORMAT", "shortfall": None},
        )

    result = CouponService.validate_coupon(
        db, format_check.code, payload.cart_total, payload.user_id, payload.cart_items
    )
    if not result.valid:
        raise HTTPException(
            status_code=400,
            detail={"message": result.reason, "code": result.code.value, "shortfall": result.shortfall},
        )

    summary = AppliedCouponSummary(**{key: result.coupon[key] for key in AppliedCouponSummary.model_fields})
    return ValidateCouponResponse(
        message="Coupon applied successfully",
        data=ValidateCouponData(
            coupon=summary,
            discount=result.discount,
            savings_text=f"You saved {format_amount(result.discount)}",
        ),
    )


@router.get("/active", response_model=ActiveCouponsResponse)
def get_active_coupons(cart_total: Optional[float] = Query(default=None, ge=0),
                       user_id: Optional[str] = None, db: Session = Depends(get_db)):
    coupons = CouponService.get_active_coupons(db, cart_total, user_id)

    unlocked, locked = [], []
    for coupon in coupons:
        if not coupon["min_order_value"] or (cart_total and cart_total >= coupon["min_order_value"]):
            unlocked.append(coupon)
        else:
            locked.append(coupon)

    logger.info("Active coupons: %d (%d unlocked, %d locked)", len(coupons), len(unlocked), len(locked))
    return ActiveCouponsResponse(
        all_coupons=coupons, unlocked_coupons=unlocked, locked_coupons=locked, total=len(coupons)
    )


@router.get("/{code}/check-usage", response_model=CouponUsageResponse)
def check_usage(code: str, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    c = CouponService.find_by_code(db, code)
    if not c:
        raise HTTPException(status_code=404, detail="Coupon not found")

    usage_count = CouponService.count_user_usage(db, c.id, user_id)
    return CouponUsageResponse(
        coupon_code=c.code,
        usage_count=usage_count,
        usage_limit=c.usage_per_user,
        can_use=usage_count < c.usage_per_user,
        remaining_uses=max(0, c.usage_per_user - usage_count),
    )


@router.post("/redemptions", response_model=RedemptionResponse, status_code=201)
def record_redemption(payload: RedemptionCreate, db: Session = Depends(get_db)):
    application = CouponService.record_redemption(
        db, payload.order_id, payload.coupon_id, payload.user_id, payload.discount_amount
    )
    c = CouponService.get_coupon(db, payload.coupon_id)
    return RedemptionResponse(
        id=application.id,
        order_id=application.order_id,
        coupon_id=application.coupon_id,
        user_id=application.user_id,
        discount_amount=application.discount_amount,
        usage_count=c.usage_count,
    )
