from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import List, Optional, Tuple

from ..core.config import settings
from ..core.errors import NotFoundError, Result, ValidationError
from ..core.money import HUNDRED, ZERO, rupiah, to_decimal
from ..core.schemas import Customer, Discount, LineItem, Product, TransactionLine
from .discounts import line_total, resolve_cart_discount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class Cart:
    """
    In-memory cart for one cashier session. Every mutator recalculates the
    totals before returning, so they are never stale. Mutators return a
    ``Result``; on error the cart is left untouched.
    """

    def __init__(self, tax_rate=None):
        rate = settings.tax_rate if tax_rate is None else to_decimal(tax_rate)
        if rate < 0:
            raise ValueError("tax_rate must be >= 0")
        self.tax_rate: Decimal = rate
        self.lines: List[LineItem] = []
        self.discount: Optional[Discount] = None
        self.customer: Optional[Customer] = None
        self.subtotal = ZERO
        self.discount_amount = ZERO
        self.tax_amount = ZERO
        self.total_amount = ZERO

    # ---------- lookups ----------
    def get_line(self, line_id: str) -> Optional[LineItem]:
        return next((l for l in self.lines if l.id == line_id), None)

    def find_product_line(self, product_id: str) -> Optional[LineItem]:
        return next((l for l in self.lines if l.product.id == product_id), None)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return len(self.lines)

    @property
    def total_quantity(self) -> int:
        return sum(l.quantity for l in self.lines)

    # ---------- mutators ----------
    def add_item(self, product: Product, quantity: int = 1, barcode: Optional[str] = None) -> Result[LineItem]:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            return Result.failure(ValidationError("Jumlah harus bilangan bulat lebih dari 0", field="quantity"))

        line = self.find_product_line(product.id)
        if line is not None:
            line.quantity += quantity
            if barcode and not line.barcode:
                line.barcode = barcode
        else:
            line = LineItem(
                product=product,
                quantity=quantity,
                unit_price=product.unit_price,
                barcode=barcode or product.barcode,
            )
            self.lines.append(line)
        self.recalculate()
        return Result.success(line)

    def update_quantity(self, line_id: str, quantity: int) -> Result[Optional[LineItem]]:
        line = self.get_line(line_id)
        if line is None:
            return Result.failure(NotFoundError("Item", line_id))
        if quantity <= 0:
            return self.remove_item(line_id)
        line.quantity = int(quantity)
        self.recalculate()
        return Result.success(line)

    def update_line_discount(self, line_id: str, percent) -> Result[LineItem]:
        line = self.get_line(line_id)
        if line is None:
            return Result.failure(NotFoundError("Item", line_id))
        line.discount_percent = min(max(to_decimal(percent), ZERO), HUNDRED)
        self.recalculate()
        return Result.success(line)

    def update_line_discount_amount(self, line_id: str, amount) -> Result[LineItem]:
        line = self.get_line(line_id)
        if line is None:
            return Result.failure(NotFoundError("Item", line_id))
        amount = to_decimal(amount)
        if amount < 0:
            return Result.failure(ValidationError("Potongan harga tidak boleh negatif", field="discount_amount"))
        line.discount_amount = amount
        self.recalculate()
        return Result.success(line)

    def remove_item(self, line_id: str) -> Result[None]:
        line = self.get_line(line_id)
        if line is None:
            return Result.failure(NotFoundError("Item", line_id))
        self.lines.remove(line)
        if not self.lines:
            # an empty cart carries no cart-level discount
            self.discount = None
        self.recalculate()
        return Result.success(None)

    def apply_cart_discount(self, discount: Discount) -> Result[Discount]:
        self.discount = discount
        self.recalculate()
        return Result.success(discount)

    def remove_cart_discount(self) -> Result[None]:
        self.discount = None
        self.recalculate()
        return Result.success(None)

    def set_customer(self, customer: Optional[Customer]) -> None:
        self.customer = customer

    def clear(self) -> None:
        self.lines = []
        self.discount = None
        self.customer = None
        self.recalculate()

    # ---------- totals ----------
    def recalculate(self) -> CartTotals:
        for l in self.lines:
            l.line_total = line_total(l.unit_price, l.quantity, l.discount_percent, l.discount_amount)
        subtotal = sum((l.line_total for l in self.lines), ZERO)
        discount_amount = resolve_cart_discount(subtotal, self.discount)
        taxable = subtotal - discount_amount
        tax_amount = taxable * self.tax_rate
        self.subtotal = subtotal
        self.discount_amount = discount_amount
        self.tax_amount = tax_amount
        self.total_amount = max(ZERO, taxable + tax_amount)
        return self.totals()

    def totals(self) -> CartTotals:
        return CartTotals(self.subtotal, self.discount_amount, self.tax_amount, self.total_amount)

    def rounded_totals(self) -> CartTotals:
        """
        Totals in whole Rupiah. The subtotal is the sum of the rounded line
        totals that ``snapshot()`` records; discount and tax are taken from
        that subtotal, and the total is rebuilt from the rounded parts.
        """
        subtotal = sum((rupiah(l.line_total) for l in self.lines), ZERO)
        discount_amount = rupiah(resolve_cart_discount(subtotal, self.discount))
        tax_amount = rupiah((subtotal - discount_amount) * self.tax_rate)
        total = max(ZERO, subtotal - discount_amount + tax_amount)
        return CartTotals(subtotal, discount_amount, tax_amount, total)

    @property
    def amount_due(self) -> Decimal:
        return self.rounded_totals().total_amount

    def snapshot(self) -> Tuple[TransactionLine, ...]:
        return tuple(
            TransactionLine(
                id=l.id,
                product_id=l.product.id,
                product_name=l.product.name,
                sku=l.product.sku,
                quantity=l.quantity,
                unit_price=l.unit_price,
                discount_percent=l.discount_percent,
                discount_amount=l.discount_amount,
                line_total=rupiah(l.line_total),
                barcode=l.barcode,
            )
            for l in self.lines
        )
