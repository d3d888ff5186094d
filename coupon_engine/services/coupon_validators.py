"""
Eligibility checks for product-specific, category-based and BOGO coupons.

Each check narrows the cart to the lines the coupon applies to. Returned
items are the caller's own line objects, never copies or new lines.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from coupon_engine.logging_config import get_logger
from coupon_engine.schemas.coupon import CartLineItem
from coupon_engine.services.coupon_helpers import pluralize

logger = get_logger("coupon_validators")

CategoryResolver = Callable[[CartLineItem], Optional[str]]


@dataclass
class EligibilityResult:
    valid: bool
    reason: Optional[str] = None
    eligible_items: List[CartLineItem] = field(default_factory=list)


@dataclass
class BOGOResult:
    valid: bool
    reason: Optional[str] = None
    sets: int = 0
    free_items: int = 0


def _catalog_id(item: CartLineItem) -> Optional[str]:
    if item.type == "bundle" and item.bundle_id:
        return item.bundle_id
    if item.type == "product" and item.product_id:
        return item.product_id
    return None


def category_lookup_resolver(lookup: Dict[str, str]) -> CategoryResolver:
    """Resolve lines against a map keyed by bundle id or ``product_<id>``."""
    def resolve(item: CartLineItem) -> Optional[str]:
        if item.type == "bundle" and item.bundle_id:
            return lookup.get(item.bundle_id)
        if item.type == "product" and item.product_id:
            return lookup.get(f"product_{item.product_id}")
        return None
    return resolve


def validate_product_specific(coupon, cart_items: Sequence[CartLineItem],
                              eligible_product_ids: Sequence[str]) -> EligibilityResult:
    if not eligible_product_ids:
        return EligibilityResult(valid=False, reason="No products are eligible for this coupon")

    wanted = set(eligible_product_ids)
    eligible = [item for item in cart_items if _catalog_id(item) in wanted]

    if not eligible:
        return EligibilityResult(
            valid=False, reason="None of the items in your cart are eligible for this coupon"
        )

    logger.debug("Coupon %s: %d eligible line(s)", coupon.code, len(eligible))
    return EligibilityResult(valid=True, eligible_items=eligible)


def validate_category_based(coupon, cart_items: Sequence[CartLineItem],
                            eligible_category_ids: Sequence[str],
                            resolve_category: Optional[CategoryResolver]) -> EligibilityResult:
    if not eligible_category_ids:
        return EligibilityResult(valid=False, reason="No categories are eligible for this coupon")

    wanted = set(eligible_category_ids)
    eligible = []
    for item in cart_items:
        category_id = resolve_category(item) if resolve_category else None
        if category_id is not None and category_id in wanted:
            eligible.append(item)

    if not eligible:
        return EligibilityResult(
            valid=False, reason="None of the items in your cart belong to eligible categories"
        )

    logger.debug("Coupon %s: %d line(s) in eligible categories", coupon.code, len(eligible))
    return EligibilityResult(valid=True, eligible_items=eligible)


def validate_bogo(coupon, eligible_items: Sequence[CartLineItem]) -> BOGOResult:
    buy_qty = coupon.bogo_buy_quantity or 0
    get_qty = coupon.bogo_get_quantity or 0

    if buy_qty == 0 or get_qty == 0:
        return BOGOResult(valid=False, reason="Invalid BOGO configuration")

    total_qty = sum(item.quantity for item in eligible_items)
    required_qty = buy_qty + get_qty

    if total_qty < required_qty:
        shortfall = required_qty - total_qty
        return BOGOResult(
            valid=False,
            reason=(
                f"Add {shortfall} more eligible {pluralize(shortfall, 'item')} "
                f"to unlock this offer (Buy {buy_qty} Get {get_qty})"
            ),
        )

    sets = total_qty // required_qty
    free_items = sets * get_qty
    logger.debug("Coupon %s: %d BOGO set(s), %d free unit(s)", coupon.code, sets, free_items)
    return BOGOResult(valid=True, sets=sets, free_items=free_items)
