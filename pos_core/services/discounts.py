"""
Discount resolution: per-line discounts, the single cart-level discount, and
promotion (best-of-many) selection.

Everything here is a pure function over the values passed in. Disqualified
promotions come back as a ``PromotionResult`` with a reason, never as an
exception.
"""
from datetime import datetime, timezone
import logging
from typing import Iterable, List, Optional, Tuple

from ..core.money import HUNDRED, ZERO, format_rupiah, rupiah, to_decimal
from ..core.schemas import Discount, Promotion, PromotionResult

logger = logging.getLogger(__name__)


def _num(v) -> str:
    d = to_decimal(v).normalize()
    return format(d, "f")


def _as_utc(dt: datetime) -> datetime:
    # naive values are taken as UTC so mixed inputs still compare
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_line_discount(unit_price, quantity, percent=0, fixed_amount=0):
    """Amount taken off one line; never more than the line's gross value."""
    gross = to_decimal(unit_price) * to_decimal(quantity)
    if gross <= 0:
        return ZERO
    off = gross * to_decimal(percent) / HUNDRED + to_decimal(fixed_amount)
    return min(max(off, ZERO), gross)


def line_total(unit_price, quantity, percent=0, fixed_amount=0):
    gross = to_decimal(unit_price) * to_decimal(quantity)
    return max(ZERO, gross - resolve_line_discount(unit_price, quantity, percent, fixed_amount))


def resolve_cart_discount(subtotal, discount: Optional[Discount]):
    subtotal = to_decimal(subtotal)
    if discount is None or subtotal <= 0:
        return ZERO
    if discount.type == "percentage":
        off = subtotal * discount.value / HUNDRED
    else:
        off = discount.value
    return min(max(off, ZERO), subtotal)


# ---------- promotions ----------

def check_promotion_validity(promotion: Promotion, now: Optional[datetime] = None) -> Tuple[bool, str]:
    if not promotion.is_active:
        return False, "Promotion is not active"
    if promotion.status == "cancelled":
        return False, "Promotion has been cancelled"
    if promotion.status == "draft":
        return False, "Promotion is still in draft"
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    if now < _as_utc(promotion.start_date):
        return False, "Promotion has not started yet"
    if now > _as_utc(promotion.end_date) or promotion.status == "expired":
        return False, "Promotion has expired"
    return True, ""


def promotion_applies_to_customer(promotion: Promotion, customer_segment: Optional[str] = None) -> bool:
    if not promotion.customer_segment or promotion.customer_segment == "all":
        return True
    if not customer_segment:
        return False
    return promotion.customer_segment.lower() == customer_segment.lower()


def promotion_applies_to_product(promotion: Promotion, product_id: str, category_id: Optional[str] = None) -> bool:
    if not promotion.product_ids and not promotion.category_ids:
        return True
    if product_id in promotion.product_ids:
        return True
    return bool(category_id) and category_id in promotion.category_ids


def calculate_promotion_discount(promotion: Promotion, order_total, quantity: int = 1) -> PromotionResult:
    order_total = to_decimal(order_total)

    if promotion.min_purchase_amount and order_total < promotion.min_purchase_amount:
        return PromotionResult(
            reason=f"Minimum purchase of {format_rupiah(promotion.min_purchase_amount)} required"
        )

    discount = ZERO
    if promotion.type == "percentage":
        pct = promotion.discount_value or ZERO
        discount = order_total * pct / HUNDRED
        details = f"{_num(pct)}% discount applied"
    elif promotion.type == "fixed":
        discount = promotion.discount_value or ZERO
        details = f"{format_rupiah(discount)} discount applied"
    else:
        buy_qty = promotion.buy_quantity or 1
        get_qty = promotion.get_quantity or 1
        free_items = (quantity // buy_qty) * get_qty if quantity > 0 else 0
        if free_items <= 0:
            return PromotionResult(reason=f"Buy {buy_qty} to get {get_qty} free")
        item_price = order_total / to_decimal(quantity)
        discount = item_price * free_items
        details = f"Buy {buy_qty} Get {get_qty} - {free_items} free item(s)"

    if promotion.max_discount_amount and discount > promotion.max_discount_amount:
        discount = promotion.max_discount_amount
        details += f" (capped at {format_rupiah(promotion.max_discount_amount)})"

    discount = rupiah(min(max(discount, ZERO), max(order_total, ZERO)))
    if discount <= 0:
        return PromotionResult(reason=details)
    return PromotionResult(promotion=promotion, discount_amount=discount, reason=details)


def resolve_best_promotion(
    candidates: Iterable[Promotion],
    order_total,
    quantity: int = 1,
    now: Optional[datetime] = None,
    customer_segment: Optional[str] = None,
) -> PromotionResult:
    """Largest discount wins; on a tie the first candidate seen is kept."""
    best: Optional[PromotionResult] = None
    rejected: List[Tuple[Promotion, str]] = []

    for promo in candidates:
        valid, reason = check_promotion_validity(promo, now)
        if not valid:
            rejected.append((promo, reason))
            continue
        if not promotion_applies_to_customer(promo, customer_segment):
            rejected.append((promo, "Promotion is not available for this customer segment"))
            continue
        result = calculate_promotion_discount(promo, order_total, quantity)
        if not result.applicable:
            rejected.append((promo, result.reason))
            continue
        if best is None or result.discount_amount > best.discount_amount:
            best = result

    if best is not None:
        logger.debug("promotion %s selected, discount=%s", best.promotion.id, best.discount_amount)
        return best
    if not rejected:
        return PromotionResult(reason="No promotions available")
    if len(rejected) == 1:
        return PromotionResult(reason=rejected[0][1])
    return PromotionResult(
        reason="No applicable promotion: " + "; ".join(f"{p.name}: {r}" for p, r in rejected)
    )


def describe_promotion(promotion: Promotion) -> str:
    if promotion.type == "percentage":
        return f"Get {_num(promotion.discount_value or 0)}% off"
    if promotion.type == "fixed":
        return f"Get {format_rupiah(promotion.discount_value or 0)} off"
    if promotion.type == "buy_x_get_y":
        return f"Buy {promotion.buy_quantity} Get {promotion.get_quantity} Free"
    return promotion.description or "Special promotion"
