from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import settings
from ..core.errors import (
    EmptyCartError,
    InsufficientPaymentError,
    MissingReferenceError,
    NoActiveShiftError,
    PosError,
    Result,
    ValidationError,
    first_error,
)
from ..core.money import HUNDRED, ZERO, format_rupiah, money_sum, to_decimal
from ..core.schemas import CashierShift, CompanyInfo, Payment, StockDecrement, Transaction
from .cart import Cart

logger = logging.getLogger(__name__)


@dataclass
class PaymentValidation:
    valid: bool
    errors: List[PosError] = field(default_factory=list)
    tendered: Any = ZERO

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]


def _tendered(p: Payment):
    if p.method == "cash" and p.received_amount is not None:
        return p.received_amount
    return p.amount


def compute_change(cash_received, amount_due):
    return max(ZERO, to_decimal(cash_received) - to_decimal(amount_due))


def validate_payments(payments: Sequence[Payment], amount_due, require_reference: Optional[bool] = None) -> PaymentValidation:
    amount_due = to_decimal(amount_due)
    if require_reference is None:
        require_reference = settings.require_payment_reference
    errors: List[PosError] = []

    if not payments:
        errors.append(ValidationError("Metode pembayaran belum dipilih", field="payments"))
        return PaymentValidation(False, errors)

    for i, p in enumerate(payments):
        if p.amount < 0:
            errors.append(ValidationError("Jumlah pembayaran tidak boleh negatif", field=f"payments[{i}].amount"))
        if p.method != "cash" and require_reference and not (p.reference or "").strip():
            errors.append(MissingReferenceError(p.method, i))
        if p.method == "cash" and p.received_amount is not None:
            if p.received_amount < 0:
                errors.append(ValidationError("Uang diterima tidak boleh negatif", field=f"payments[{i}].received_amount"))
            elif p.received_amount < p.amount:
                errors.append(ValidationError("Uang diterima kurang dari jumlah tunai", field=f"payments[{i}].received_amount"))

    tendered = money_sum(_tendered(p) for p in payments)
    if tendered < amount_due:
        errors.append(InsufficientPaymentError(amount_due, tendered))

    return PaymentValidation(not errors, errors, tendered)


def _settle(payments: Sequence[Payment], amount_due) -> List[Payment]:
    """Work out change; cash is the only tender that gives change back."""
    if len(payments) == 1 and payments[0].method == "cash":
        p = payments[0]
        tendered = _tendered(p)
        return [p.model_copy(update={
            "amount": amount_due,
            "received_amount": tendered,
            "change": compute_change(tendered, amount_due),
        })]

    over = money_sum(_tendered(p) for p in payments) - amount_due
    out: List[Payment] = []
    for p in payments:
        if over > 0 and p.method == "cash":
            out.append(p.model_copy(update={"change": min(over, _tendered(p))}))
            over = ZERO
        else:
            out.append(p)
    return out


def confirm_payment(
    cart: Cart,
    payments: Sequence[Payment],
    shift: Optional[CashierShift],
    order_number: str,
    now: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Result[Transaction]:
    """
    Build the immutable Transaction for the current cart. Nothing is mutated:
    clearing the cart and booking the sale on the shift is up to the caller.
    """
    if shift is None or shift.status != "open":
        return Result.failure(NoActiveShiftError())
    if cart.is_empty:
        return Result.failure(EmptyCartError())

    totals = cart.rounded_totals()
    check = validate_payments(payments, totals.total_amount)
    if not check.valid:
        err = first_error(check.errors)
        logger.info("payment rejected order=%s code=%s", order_number, err.code)
        return Result.failure(err)

    settled = _settle(payments, totals.total_amount)
    tx = Transaction(
        order_number=order_number,
        items=cart.snapshot(),
        subtotal=totals.subtotal,
        discount_amount=totals.discount_amount,
        tax_rate=cart.tax_rate,
        tax_amount=totals.tax_amount,
        total_amount=totals.total_amount,
        payments=tuple(settled),
        payment_method=settled[0].method if len(settled) == 1 else "split",
        cashier_shift_id=shift.id,
        timestamp=now or datetime.now(timezone.utc),
        customer=cart.customer,
        notes=notes,
    )
    logger.info("transaction %s confirmed total=%s method=%s", tx.order_number, tx.total_amount, tx.payment_method)
    return Result.success(tx)


def stock_decrements(transaction: Transaction, reverse: bool = False) -> List[StockDecrement]:
    """
    One instruction per line; refunds carry negative quantities (stock goes
    back). ``reverse`` gives the moves that undo a cancelled sale.
    """
    sign = -1 if reverse else 1
    return [StockDecrement(product_id=i.product_id, quantity=sign * i.quantity) for i in transaction.items]


def _tax_label(rate) -> str:
    pct = (to_decimal(rate) * HUNDRED).normalize()
    return f"Pajak ({format(pct, 'f')}%)"


def receipt_payload(transaction: Transaction, company: Optional[CompanyInfo] = None, cashier_name: Optional[str] = None) -> Dict[str, Any]:
    company = company or CompanyInfo()
    return {
        "company": company.model_dump(),
        "transaction_number": transaction.order_number,
        "status": transaction.status,
        "date": transaction.timestamp.strftime("%d/%m/%Y, %H.%M"),
        "cashier": cashier_name or "Unknown",
        "customer": transaction.customer.name if transaction.customer else None,
        "items": [
            {
                "name": i.product_name,
                "quantity": f"{i.quantity}pc",
                "unit_price": format_rupiah(i.unit_price),
                "gross": format_rupiah(i.unit_price * i.quantity),
                "total": format_rupiah(i.line_total),
            }
            for i in transaction.items
        ],
        "subtotal": format_rupiah(transaction.subtotal),
        "discount": format_rupiah(transaction.discount_amount),
        "tax_label": _tax_label(transaction.tax_rate),
        "tax": format_rupiah(transaction.tax_amount),
        "total": format_rupiah(transaction.total_amount),
        "payment_method": transaction.payment_method.upper(),
        "payments": [{"method": p.method, "amount": format_rupiah(p.amount)} for p in transaction.payments],
        "change": format_rupiah(transaction.change),
    }
