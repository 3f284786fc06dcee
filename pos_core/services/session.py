"""
One cashier's working session: the cart, the shift ledger and the
transaction log, composed. UI/HTTP handlers get a ``PosSession`` by reference
and call into it; nothing here is global.

``store`` is optional. When given, it must provide ``open_shift(shift)``,
``close_shift(shift)``, ``save_transaction(tx, stock_decrements)``,
``cancel_transaction(tx, reversals)`` and ``count_orders_on(prefix, day)``
(order numbers are then shared by every cashier using that store). A
``PosError`` raised by the store (for instance the one-open-shift-per-cashier
constraint) comes back as a failed ``Result`` and leaves the session as it was.
"""
from datetime import datetime, timezone
import logging
from typing import Iterable, Optional, Sequence

from ..core.errors import NotFoundError, PosError, Result
from ..core.schemas import CompanyInfo, Discount, Payment, Promotion, PromotionResult, RefundRequest, Transaction
from .cart import Cart
from .discounts import resolve_best_promotion
from .payments import confirm_payment, receipt_payload, stock_decrements
from .shift import ShiftLedger
from .transaction_log import TransactionLog

logger = logging.getLogger(__name__)


class PosSession:
    def __init__(self, cashier_id: str, cashier_name: str, tax_rate=None, store=None,
                 company: Optional[CompanyInfo] = None):
        self.cashier_id = cashier_id
        self.cashier_name = cashier_name
        self.cart = Cart(tax_rate)
        self.ledger = ShiftLedger()
        self.log = TransactionLog()
        self.store = store
        self.company = company or CompanyInfo()

    # ---------- shift ----------
    def open_shift(self, starting_cash, notes: Optional[str] = None, now: Optional[datetime] = None) -> Result:
        previous = self.ledger.current
        res = self.ledger.open_shift(self.cashier_id, self.cashier_name, starting_cash, notes, now)
        if not res.ok or self.store is None:
            return res
        try:
            self.store.open_shift(res.value)
        except PosError as e:
            self.ledger.current = previous
            logger.warning("store rejected shift for %s: %s", self.cashier_id, e.code)
            return Result.failure(e)
        return res

    def close_shift(self, actual_cash, notes: Optional[str] = None, now: Optional[datetime] = None) -> Result:
        previous = self.ledger.current.model_copy(deep=True) if self.ledger.current is not None else None
        res = self.ledger.close_shift(actual_cash, notes, now)
        if not res.ok or self.store is None:
            return res
        try:
            self.store.close_shift(res.value)
        except PosError as e:
            self.ledger.current = previous
            if self.ledger.history and self.ledger.history[-1] is res.value:
                self.ledger.history.pop()
            logger.warning("store rejected shift close for %s: %s", self.cashier_id, e.code)
            return Result.failure(e)
        return res

    def shift_summary(self) -> Result:
        return self.ledger.summary()

    # ---------- promotions ----------
    def best_promotion(self, promotions: Iterable[Promotion], now: Optional[datetime] = None) -> PromotionResult:
        segment = self.cart.customer.segment if self.cart.customer else None
        return resolve_best_promotion(promotions, self.cart.subtotal, self.cart.total_quantity, now, segment)

    def apply_best_promotion(self, promotions: Iterable[Promotion], now: Optional[datetime] = None) -> PromotionResult:
        """Best promotion becomes the cart-level discount (replacing any previous one)."""
        best = self.best_promotion(promotions, now)
        if best.applicable:
            self.cart.apply_cart_discount(Discount(
                type="fixed_amount",
                value=best.discount_amount,
                description=best.promotion.name,
            ))
        return best

    # ---------- payment ----------
    def pay(self, payments: Sequence[Payment], notes: Optional[str] = None, now: Optional[datetime] = None) -> Result[Transaction]:
        """All-or-nothing: on any failure the cart, shift and log are unchanged."""
        now = now or datetime.now(timezone.utc)
        issued = self.store.count_orders_on(self.log.prefix, now) if self.store is not None else None
        order_number = self.log.next_order_number(now, issued)
        res = confirm_payment(self.cart, payments, self.ledger.active, order_number, now, notes)
        if not res.ok:
            return res
        tx = res.value
        if self.store is not None:
            try:
                self.store.save_transaction(tx, stock_decrements(tx))
            except PosError as e:
                return Result.failure(e)
        self.log.append(tx)
        self.ledger.record_transaction(tx)
        self.cart.clear()
        return Result.success(tx)

    def refund(self, request: RefundRequest, now: Optional[datetime] = None) -> Result[Transaction]:
        res = self.log.build_refund(request, self.ledger.active, now)
        if not res.ok:
            return res
        tx = res.value
        if self.store is not None:
            try:
                self.store.save_transaction(tx, stock_decrements(tx))
            except PosError as e:
                return Result.failure(e)
        self.log.append(tx)
        self.ledger.record_transaction(tx)
        return Result.success(tx)

    def cancel(self, tx_id: str, reason: Optional[str] = None) -> Result[Transaction]:
        """Void a sale of the open shift: stock goes back, shift totals drop."""
        res = self.log.build_cancel(tx_id, self.ledger.active, reason)
        if not res.ok:
            return res
        cancelled = res.value
        if self.store is not None:
            try:
                self.store.cancel_transaction(cancelled, stock_decrements(cancelled, reverse=True))
            except PosError as e:
                return Result.failure(e)
        self.log.replace(cancelled)
        self.ledger.void_transaction(cancelled)
        return Result.success(cancelled)

    def receipt(self, tx_id: str) -> Result[dict]:
        tx = self.log.get(tx_id)
        if tx is None:
            return Result.failure(NotFoundError("Transaksi", tx_id))
        return Result.success(receipt_payload(tx, self.company, self.cashier_name))

    def reset(self) -> None:
        self.cart.clear()
