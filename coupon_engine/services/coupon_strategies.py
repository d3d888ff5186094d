"""
One strategy per coupon type. The validator picks a strategy once per
coupon and only talks to it through ``check_eligibility`` and
``compute_discount``.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from coupon_engine.schemas.coupon import CartLineItem, ValidationCode
from coupon_engine.services.coupon_validators import (
    BOGOResult,
    CategoryResolver,
    validate_bogo,
    validate_category_based,
    validate_product_specific,
)
from coupon_engine.services.discount_calculator import DiscountCalculator


@dataclass
class Eligibility:
    valid: bool
    reason: Optional[str] = None
    code: Optional[ValidationCode] = None
    eligible_items: List[CartLineItem] = field(default_factory=list)
    bogo: Optional[BOGOResult] = None


class CouponStrategy(ABC):
    coupon_type: str = ""
    requires_cart_items: bool = True

    @abstractmethod
    def check_eligibility(self, coupon, cart_items: Sequence[CartLineItem],
                          resolve_category: Optional[CategoryResolver] = None) -> Eligibility:
        raise NotImplementedError

    @abstractmethod
    def compute_discount(self, coupon, cart_subtotal, eligibility: Eligibility) -> int:
        raise NotImplementedError


class CartWideStrategy(CouponStrategy):
    coupon_type = "cart_wide"
    requires_cart_items = False

    def check_eligibility(self, coupon, cart_items, resolve_category=None):
        return Eligibility(valid=True, eligible_items=list(cart_items))

    def compute_discount(self, coupon, cart_subtotal, eligibility):
        return DiscountCalculator.calculate_discount(coupon, cart_subtotal)


class ProductSpecificStrategy(CouponStrategy):
    coupon_type = "product_specific"

    def check_eligibility(self, coupon, cart_items, resolve_category=None):
        result = validate_product_specific(coupon, cart_items, coupon.eligible_product_ids)
        if not result.valid:
            return Eligibility(valid=False, reason=result.reason, code=ValidationCode.NO_ELIGIBLE_ITEMS)
        return Eligibility(valid=True, eligible_items=result.eligible_items)

    def compute_discount(self, coupon, cart_subtotal, eligibility):
        return DiscountCalculator.calculate_item_based_discount(
            coupon, eligibility.eligible_items, coupon.max_discount_items
        )


class CategoryBasedStrategy(CouponStrategy):
    coupon_type = "category_based"

    def check_eligibility(self, coupon, cart_items, resolve_category=None):
        result = validate_category_based(coupon, cart_items, coupon.eligible_category_ids, resolve_category)
        if not result.valid:
            return Eligibility(valid=False, reason=result.reason, code=ValidationCode.NO_ELIGIBLE_CATEGORIES)
        return Eligibility(valid=True, eligible_items=result.eligible_items)

    def compute_discount(self, coupon, cart_subtotal, eligibility):
        return DiscountCalculator.calculate_item_based_discount(
            coupon, eligibility.eligible_items, coupon.max_discount_items
        )


class BogoStrategy(CouponStrategy):
    coupon_type = "bogo"

    def check_eligibility(self, coupon, cart_items, resolve_category=None):
        result = validate_product_specific(coupon, cart_items, coupon.eligible_product_ids)
        if not result.valid:
            return Eligibility(valid=False, reason=result.reason, code=ValidationCode.NO_ELIGIBLE_ITEMS)

        bogo = validate_bogo(coupon, result.eligible_items)
        if not bogo.valid:
            return Eligibility(valid=False, reason=bogo.reason, code=ValidationCode.BOGO_NOT_MET)
        return Eligibility(valid=True, eligible_items=result.eligible_items, bogo=bogo)

    def compute_discount(self, coupon, cart_subtotal, eligibility):
        return DiscountCalculator.calculate_bogo_discount(
            coupon, eligibility.eligible_items, eligibility.bogo.sets, eligibility.bogo.free_items
        )


STRATEGIES: Dict[str, CouponStrategy] = {
    strategy.coupon_type: strategy
    for strategy in (CartWideStrategy(), ProductSpecificStrategy(), CategoryBasedStrategy(), BogoStrategy())
}


def get_strategy(coupon_type: Optional[str]) -> CouponStrategy:
    # Records written before coupon types existed are cart-wide
    strategy = STRATEGIES.get(coupon_type or "cart_wide")
    if strategy is None:
        raise ValueError(f"Unsupported coupon type: {coupon_type!r}")
    return strategy
