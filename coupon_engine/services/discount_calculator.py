
from typing import List, Optional, Sequence
from decimal import Decimal, ROUND_HALF_UP, getcontext
from coupon_engine.logging_config import get_logger
from coupon_engine.schemas.coupon import CartLineItem

getcontext().prec = 28

logger = get_logger("discount_calculator")


def D(x) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x or 0))


def round_rupee(x) -> int:
    """Round half-up to the nearest whole currency unit."""
    return int(D(x).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _take_units(items: Sequence[CartLineItem], count: int, descending: bool) -> List[CartLineItem]:
    # One copy per line touched, quantity set to the units taken from it.
    # Stable sort keeps cart order between equal prices.
    taken = []
    remaining = count
    for item in sorted(items, key=lambda line: line.price, reverse=descending):
        if remaining <= 0:
            break
        units = min(remaining, item.quantity)
        taken.append(item if units == item.quantity else item.model_copy(update={"quantity": units}))
        remaining -= units
    return taken


class DiscountCalculator:
    """Computes the discount amount for each coupon type"""

    @staticmethod
    def _apply_rule(coupon, base: Decimal) -> Decimal:
        value = D(coupon.discount_value)
        if coupon.discount_type == 'Percent':
            discount = base * value / D(100)
            if coupon.max_discount:
                discount = min(discount, D(coupon.max_discount))
            return discount
        elif coupon.discount_type == 'Fixed':
            return min(value, base)
        raise ValueError(f"Unsupported discount type: {coupon.discount_type!r}")

    @staticmethod
    def calculate_discount(coupon, cart_subtotal) -> int:
        if not coupon or not cart_subtotal:
            return 0
        return round_rupee(DiscountCalculator._apply_rule(coupon, D(cart_subtotal)))

    @staticmethod
    def apply_max_items_limit(eligible_items: Sequence[CartLineItem], max_items: Optional[int]) -> List[CartLineItem]:
        if not max_items or max_items <= 0:
            return list(eligible_items)

        # Most expensive units first
        limited = _take_units(eligible_items, max_items, descending=True)
        logger.debug("Limited discount to %d unit(s) (max: %d)", sum(line.quantity for line in limited), max_items)
        return limited

    @staticmethod
    def calculate_item_based_discount(coupon, eligible_items: Sequence[CartLineItem],
                                      max_items: Optional[int] = None) -> int:
        items = eligible_items
        if max_items:
            items = DiscountCalculator.apply_max_items_limit(eligible_items, max_items)

        eligible_subtotal = sum((D(item.price) * D(item.quantity) for item in items), D(0))
        if eligible_subtotal == 0:
            return 0

        discount = round_rupee(DiscountCalculator._apply_rule(coupon, eligible_subtotal))
        logger.debug("Eligible subtotal %s, discount %d", eligible_subtotal, discount)
        return discount

    @staticmethod
    def calculate_bogo_discount(coupon, eligible_items: Sequence[CartLineItem], sets: int, free_items: int) -> int:
        if sets == 0 or free_items == 0:
            return 0

        percent = D(coupon.bogo_discount_percent or 100)
        # The cheapest units are the ones given away
        free = _take_units(eligible_items, free_items, descending=False)

        total = sum((D(line.price) * D(line.quantity) * percent / D(100) for line in free), D(0))
        discount = round_rupee(total)
        logger.debug("BOGO discount %d (%s%% off %d unit(s))", discount, percent, sum(line.quantity for line in free))
        return discount
