"""
Coupon checks that do not depend on cart contents: code format, status,
usage caps, minimum order value, plus response formatting.
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from coupon_engine.config import CURRENCY_SYMBOL
from coupon_engine.schemas.coupon import ValidationCode
from coupon_engine.services.discount_calculator import DiscountCalculator, D, round_rupee

CODE_PATTERN = re.compile(r"[A-Z0-9-]+")
MIN_CODE_LENGTH = 3
MAX_CODE_LENGTH = 50


@dataclass
class FormatCheck:
    valid: bool
    code: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class CheckResult:
    valid: bool
    reason: Optional[str] = None
    code: Optional[ValidationCode] = None
    shortfall: Optional[int] = None


PASSED = CheckResult(valid=True)


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    if count == 1:
        return singular
    return plural or f"{singular}s"


def format_amount(amount) -> str:
    value = D(amount)
    if value == value.to_integral_value():
        return f"{CURRENCY_SYMBOL}{int(value)}"
    return f"{CURRENCY_SYMBOL}{value.quantize(D('0.01'))}"


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def validate_coupon_format(code) -> FormatCheck:
    if not code or not isinstance(code, str):
        return FormatCheck(valid=False, reason="Please enter a coupon code")

    normalized = code.strip().upper()

    if len(normalized) < MIN_CODE_LENGTH:
        return FormatCheck(valid=False, reason="Coupon code too short")
    if len(normalized) > MAX_CODE_LENGTH:
        return FormatCheck(valid=False, reason="Coupon code too long")
    if not CODE_PATTERN.fullmatch(normalized):
        return FormatCheck(valid=False, reason="Coupon code can only contain letters, numbers, and hyphens")

    return FormatCheck(valid=True, code=normalized)


def check_coupon_status(coupon) -> CheckResult:
    """Trust the stored status; dates only feed the message."""
    if coupon.status == "active":
        return PASSED
    if coupon.status == "inactive":
        reason = "This coupon is currently inactive"
    elif coupon.status == "expired":
        reason = f"This coupon expired on {format_date(coupon.end_date)}"
    elif coupon.status == "scheduled":
        reason = f"This coupon will be valid from {format_date(coupon.start_date)}"
    else:
        raise ValueError(f"Unknown coupon status: {coupon.status!r}")
    return CheckResult(valid=False, reason=reason, code=ValidationCode.COUPON_INVALID)


def check_first_order(coupon, completed_order_count: int) -> CheckResult:
    if coupon.first_order_only and completed_order_count > 0:
        return CheckResult(
            valid=False,
            reason="This coupon is only valid for first-time customers",
            code=ValidationCode.FIRST_ORDER_ONLY,
        )
    return PASSED


def check_usage_limit(coupon) -> CheckResult:
    # No usage_limit means unlimited
    if not coupon.usage_limit:
        return PASSED
    if (coupon.usage_count or 0) >= coupon.usage_limit:
        return CheckResult(
            valid=False,
            reason="This coupon has reached its usage limit",
            code=ValidationCode.USAGE_LIMIT_REACHED,
        )
    return PASSED


def check_user_usage(coupon, coupon_usage_count: int) -> CheckResult:
    limit = coupon.usage_per_user
    if coupon_usage_count >= limit:
        return CheckResult(
            valid=False,
            reason=f"You have already used this coupon {limit} {pluralize(limit, 'time')}",
            code=ValidationCode.USER_LIMIT_REACHED,
        )
    return PASSED


def check_minimum_order_value(coupon, cart_subtotal) -> CheckResult:
    if not coupon.min_order_value or D(cart_subtotal) >= D(coupon.min_order_value):
        return PASSED
    return CheckResult(
        valid=False,
        reason=f"Minimum order value of {format_amount(coupon.min_order_value)} required",
        code=ValidationCode.MIN_ORDER_NOT_MET,
        shortfall=round_rupee(D(coupon.min_order_value) - D(cart_subtotal)),
    )


def initial_status(start_date: date, today: Optional[date] = None) -> str:
    today = today or date.today()
    return "scheduled" if start_date > today else "active"


def get_discount_display_text(coupon) -> str:
    if coupon.discount_type == "Percent":
        text = f"{D(coupon.discount_value).normalize():f}% OFF"
        if coupon.max_discount:
            text += f" (up to {format_amount(coupon.max_discount)})"
        return text
    return f"{format_amount(coupon.discount_value)} OFF"


def format_coupon_response(coupon, cart_subtotal=None) -> dict:
    usage_count = coupon.usage_count or 0
    formatted = {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": coupon.discount_value,
        "coupon_type": coupon.coupon_type,
        "min_order_value": coupon.min_order_value,
        "max_discount": coupon.max_discount,
        "start_date": coupon.start_date,
        "end_date": coupon.end_date,
        "status": coupon.status,
        "first_order_only": coupon.first_order_only,
        "usage_limit": coupon.usage_limit,
        "usage_per_user": coupon.usage_per_user,
        "usage_count": usage_count,
        "remaining_uses": max(0, coupon.usage_limit - usage_count) if coupon.usage_limit else None,
        "display_text": get_discount_display_text(coupon),
    }

    if cart_subtotal is not None:
        formatted["calculated_discount"] = DiscountCalculator.calculate_discount(coupon, cart_subtotal)
        if coupon.min_order_value:
            formatted["is_unlocked"] = D(cart_subtotal) >= D(coupon.min_order_value)
            formatted["unlock_amount"] = round_rupee(max(D(0), D(coupon.min_order_value) - D(cart_subtotal)))

    return formatted
