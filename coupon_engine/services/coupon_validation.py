"""
Coupon validation pipeline.

Runs the checks below in order and stops at the first failure:

1. the coupon exists
2. its status is ``active``
3. first-order restriction
4. global usage cap
5. per-user usage cap
6. type-specific eligibility (via the coupon type's strategy)
7. minimum order value, always against the full cart subtotal

Everything the pipeline needs (usage counts, category lookup) is passed
in; nothing here touches the database.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from coupon_engine.logging_config import get_logger
from coupon_engine.schemas.coupon import CartLineItem, CouponValidationResult, ValidationCode
from coupon_engine.services.coupon_helpers import (
    CheckResult,
    check_coupon_status,
    check_first_order,
    check_minimum_order_value,
    check_usage_limit,
    check_user_usage,
    format_coupon_response,
)
from coupon_engine.services.coupon_strategies import get_strategy
from coupon_engine.services.coupon_validators import CategoryResolver

logger = get_logger("coupon_validation")


@dataclass
class UserUsageFacts:
    completed_order_count: int = 0
    coupon_usage_count: int = 0


def _rejected(check: CheckResult) -> CouponValidationResult:
    return CouponValidationResult(
        valid=False, reason=check.reason, code=check.code, shortfall=check.shortfall
    )


def validate_coupon(coupon, cart_subtotal, usage: UserUsageFacts,
                    cart_items: Sequence[CartLineItem] = (),
                    resolve_category: Optional[CategoryResolver] = None) -> CouponValidationResult:
    if coupon is None:
        return CouponValidationResult(
            valid=False, reason="Invalid coupon code", code=ValidationCode.COUPON_NOT_FOUND
        )

    check = check_coupon_status(coupon)
    if check.valid:
        check = check_first_order(coupon, usage.completed_order_count)
    if check.valid:
        check = check_usage_limit(coupon)
    if check.valid:
        check = check_user_usage(coupon, usage.coupon_usage_count)
    if not check.valid:
        logger.info("Coupon %s rejected: %s", coupon.code, check.code.value)
        return _rejected(check)

    strategy = get_strategy(coupon.coupon_type)

    if strategy.requires_cart_items and not cart_items:
        return CouponValidationResult(
            valid=False,
            reason="Cart items required for this coupon type",
            code=ValidationCode.CART_ITEMS_REQUIRED,
        )

    eligibility = strategy.check_eligibility(coupon, cart_items, resolve_category)
    if not eligibility.valid:
        logger.info("Coupon %s rejected: %s", coupon.code, eligibility.code.value)
        return CouponValidationResult(valid=False, reason=eligibility.reason, code=eligibility.code)

    discount = strategy.compute_discount(coupon, cart_subtotal, eligibility)

    check = check_minimum_order_value(coupon, cart_subtotal)
    if not check.valid:
        logger.info("Coupon %s rejected: %s (short by %s)", coupon.code, check.code.value, check.shortfall)
        return _rejected(check)

    logger.info("Coupon %s validated (%s), discount %d", coupon.code, strategy.coupon_type, discount)
    return CouponValidationResult(
        valid=True,
        coupon=format_coupon_response(coupon, cart_subtotal),
        discount=discount,
        code=ValidationCode.VALID,
    )
