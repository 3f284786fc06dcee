from datetime import datetime
from decimal import Decimal
import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from pos_core.core.errors import (
    DuplicateOrderNumberError,
    InsufficientPaymentError,
    NoActiveShiftError,
    NotFoundError,
    ShiftAlreadyOpenError,
    TransactionNotCancellableError,
    ValidationError,
)
from pos_core.core.schemas import Customer, Payment, Promotion, RefundItem, RefundRequest
from pos_core.db import init_db, make_engine
from pos_core.services.session import PosSession
from pos_core.services.store import SqlPosStore

NOW = datetime(2026, 3, 1, 10, 0)


def _store():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    return SqlPosStore(sessionmaker(bind=engine, autoflush=False))


def test_failed_payment_changes_nothing(untaxed_session, make_product):
    ses = untaxed_session
    ses.open_shift(0, now=NOW).unwrap()
    ses.cart.add_item(make_product(25000), 2)

    res = ses.pay([Payment(method="cash", amount=10000)], now=NOW)
    assert isinstance(res.error, InsufficientPaymentError)
    assert ses.cart.total_quantity == 2
    assert len(ses.log) == 0
    assert ses.ledger.current.total_transactions == 0


def test_order_numbers_follow_the_day(untaxed_session, make_product):
    ses = untaxed_session
    ses.open_shift(0, now=NOW).unwrap()
    numbers = []
    for _ in range(2):
        ses.cart.add_item(make_product(1000), 1)
        numbers.append(ses.pay([Payment(method="cash", amount=1000)], now=NOW).unwrap().order_number)
    assert numbers == ["POS-20260301-0001", "POS-20260301-0002"]

    ses.cart.add_item(make_product(1000), 1)
    nxt = ses.pay([Payment(method="cash", amount=1000)], now=datetime(2026, 3, 2, 7, 0)).unwrap()
    assert nxt.order_number == "POS-20260302-0001"


def test_best_promotion_becomes_cart_discount(untaxed_session, make_product):
    ses = untaxed_session
    ses.cart.add_item(make_product(50000), 2)
    promos = [
        Promotion(id="p10", name="Diskon 10%", type="percentage", discount_value=10,
                  start_date=datetime(2026, 1, 1), end_date=datetime(2026, 12, 31)),
        Promotion(id="f25", name="Potongan 25rb", type="fixed", discount_value=25000,
                  start_date=datetime(2026, 1, 1), end_date=datetime(2026, 12, 31)),
    ]
    res = ses.apply_best_promotion(promos, now=NOW)
    assert res.promotion.id == "f25"
    assert ses.cart.discount.description == "Potongan 25rb"
    assert ses.cart.total_amount == Decimal("75000")


def test_vip_only_promotion_needs_vip_customer(untaxed_session, make_product):
    ses = untaxed_session
    ses.cart.add_item(make_product(100000), 1)
    vip = Promotion(id="vip", name="VIP", type="fixed", discount_value=15000, customer_segment="vip",
                    start_date=datetime(2026, 1, 1), end_date=datetime(2026, 12, 31))
    assert not ses.best_promotion([vip], now=NOW).applicable

    ses.cart.set_customer(Customer(id="c1", name="Sari", segment="vip"))
    assert ses.best_promotion([vip], now=NOW).discount_amount == Decimal("15000")


def test_refund_reduces_sales_and_drawer(untaxed_session, make_product):
    ses = untaxed_session
    ses.open_shift(100000, now=NOW).unwrap()
    line = ses.cart.add_item(make_product(20000), 3).unwrap()
    sale = ses.pay([Payment(method="cash", amount=60000)], now=NOW).unwrap()

    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=1)], reason="rusak")
    refund = ses.refund(req, now=NOW).unwrap()

    assert refund.is_refund
    assert refund.order_number == f"REF-{sale.order_number}"
    assert refund.total_amount == Decimal("-20000")
    assert refund.items[0].quantity == -1
    shift = ses.ledger.current
    assert shift.total_sales == Decimal("40000")
    assert ses.ledger.expected_cash().unwrap() == Decimal("140000")

    # two left on the original line
    too_many = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=3)])
    assert isinstance(ses.refund(too_many, now=NOW).error, ValidationError)

    rest = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=2)])
    second = ses.refund(rest, now=NOW).unwrap()
    assert second.order_number == f"REF-{sale.order_number}-2"

    # a refund is not itself refundable
    again = RefundRequest(original_transaction_id=refund.id, items=[RefundItem(line_id=refund.items[0].id, quantity=1)])
    assert isinstance(ses.refund(again, now=NOW).error, ValidationError)


def test_refund_amount_includes_tax(make_product):
    ses = PosSession("kasir-2", "Ani", tax_rate=Decimal("0.11"))
    ses.open_shift(0, now=NOW).unwrap()
    line = ses.cart.add_item(make_product(10000), 2).unwrap()
    sale = ses.pay([Payment(method="cash", amount=22200)], now=NOW).unwrap()

    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=1)])
    assert ses.refund(req, now=NOW).unwrap().total_amount == Decimal("-11100")


def test_store_enforces_one_open_shift_per_cashier(make_product):
    store = _store()
    first = PosSession("kasir-9", "Rina", tax_rate=0, store=store)
    second = PosSession("kasir-9", "Rina", tax_rate=0, store=store)

    first.open_shift(50000, now=NOW).unwrap()
    res = second.open_shift(50000, now=NOW)
    assert isinstance(res.error, ShiftAlreadyOpenError)
    assert second.ledger.current is None
    assert store.open_shift_for("kasir-9").id == first.ledger.current.id

    # after closing, the cashier may open again
    first.close_shift(50000).unwrap()
    assert store.open_shift_for("kasir-9") is None
    assert second.open_shift(0, now=NOW).ok


def test_store_books_stock_moves(make_product):
    store = _store()
    ses = PosSession("kasir-3", "Dedi", tax_rate=0, store=store)
    ses.open_shift(0, now=NOW).unwrap()
    product = make_product(8000, pid="roti")
    line = ses.cart.add_item(product, 4).unwrap()
    sale = ses.pay([Payment(method="cash", amount=32000)], now=NOW).unwrap()
    assert store.stock_moved("roti") == 4
    assert store.shift_cash_sales(ses.ledger.current.id) == Decimal("32000")

    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=1)])
    ses.refund(req, now=NOW).unwrap()
    assert store.stock_moved("roti") == 3


def test_cashiers_sharing_a_store_get_distinct_order_numbers(make_product):
    store = _store()
    ani = PosSession("kasir-a", "Ani", tax_rate=0, store=store)
    budi = PosSession("kasir-b", "Budi", tax_rate=0, store=store)
    numbers = []
    for ses in (ani, budi, ani):
        if ses.ledger.active is None:
            ses.open_shift(0, now=NOW).unwrap()
        ses.cart.add_item(make_product(1000), 1)
        numbers.append(ses.pay([Payment(method="cash", amount=1000)], now=NOW).unwrap().order_number)
    assert numbers == ["POS-20260301-0001", "POS-20260301-0002", "POS-20260301-0003"]

    # refunds do not take a sale number
    sale = next(iter(ani.log))
    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=sale.items[0].id, quantity=1)])
    ani.refund(req, now=NOW).unwrap()
    budi.cart.add_item(make_product(1000), 1)
    assert budi.pay([Payment(method="cash", amount=1000)], now=NOW).unwrap().order_number == "POS-20260301-0004"


def test_reused_order_number_is_rejected(make_product):
    store = _store()
    ses = PosSession("kasir-d", "Dewi", tax_rate=0, store=store)
    ses.open_shift(0, now=NOW).unwrap()
    ses.cart.add_item(make_product(5000), 1)
    tx = ses.pay([Payment(method="cash", amount=5000)], now=NOW).unwrap()

    copy = tx.model_copy(update={
        "id": uuid.uuid4().hex,
        "items": tuple(i.model_copy(update={"id": uuid.uuid4().hex}) for i in tx.items),
    })
    with pytest.raises(DuplicateOrderNumberError) as exc:
        store.save_transaction(copy, [])
    assert exc.value.status_code == 409 and exc.value.order_number == tx.order_number


def test_persisted_lines_add_up_to_subtotal(make_product):
    store = _store()
    ses = PosSession("kasir-r", "Rudi", tax_rate=0, store=store)
    ses.open_shift(0, now=NOW).unwrap()
    for pid in ("x1", "x2"):
        line = ses.cart.add_item(make_product(12345, pid=pid), 1).unwrap()
        ses.cart.update_line_discount(line.id, 10)
    tx = ses.pay([Payment(method="cash", amount=22222)], now=NOW).unwrap()

    assert tx.subtotal == sum(i.line_total for i in tx.items) == Decimal("22222")
    assert tx.total_amount == Decimal("22222")


def test_failed_store_close_keeps_shift_open(make_product):
    ses = PosSession("kasir-c", "Citra", tax_rate=0)
    ses.open_shift(10000, now=NOW).unwrap()
    # shift was never written to this store, so closing it there fails
    ses.store = _store()

    res = ses.close_shift(10000, notes="tutup")
    assert isinstance(res.error, NotFoundError)
    assert ses.ledger.active is not None
    assert ses.ledger.current.status == "open" and ses.ledger.current.notes is None
    assert ses.ledger.history == []


def test_refund_receipt_shows_negative_rupiah(untaxed_session, make_product):
    ses = untaxed_session
    ses.open_shift(0, now=NOW).unwrap()
    line = ses.cart.add_item(make_product(20000), 1).unwrap()
    sale = ses.pay([Payment(method="cash", amount=20000)], now=NOW).unwrap()
    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=1)])
    refund = ses.refund(req, now=NOW).unwrap()

    out = ses.receipt(refund.id).unwrap()
    assert out["total"] == "Rp -20.000"
    assert out["items"][0]["total"] == "Rp -20.000"


def test_cancel_sale_reverses_shift_and_stock(make_product):
    store = _store()
    ses = PosSession("kasir-v", "Vina", tax_rate=0, store=store)
    ses.open_shift(50000, now=NOW).unwrap()
    ses.cart.add_item(make_product(8000, pid="kopi"), 2)
    sale = ses.pay([Payment(method="cash", amount=16000)], now=NOW).unwrap()
    assert store.stock_moved("kopi") == 2

    cancelled = ses.cancel(sale.id, reason="salah input").unwrap()
    assert cancelled.status == "cancelled"
    assert cancelled.order_number == sale.order_number
    assert cancelled.notes == "Dibatalkan: salah input"
    assert ses.log.get(sale.id).status == "cancelled"

    shift = ses.ledger.current
    assert shift.total_transactions == 0 and shift.total_sales == 0
    assert ses.ledger.expected_cash().unwrap() == Decimal("50000")
    assert store.stock_moved("kopi") == 0
    assert store.transaction_status(sale.id) == "cancelled"

    assert isinstance(ses.cancel(sale.id).error, TransactionNotCancellableError)
    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=sale.items[0].id, quantity=1)])
    assert isinstance(ses.refund(req, now=NOW).error, ValidationError)

    # the number stays used
    ses.cart.add_item(make_product(1000), 1)
    assert ses.pay([Payment(method="cash", amount=1000)], now=NOW).unwrap().order_number == "POS-20260301-0002"


def test_cancel_rules(untaxed_session, make_product):
    ses = untaxed_session
    assert isinstance(ses.cancel("nope").error, NoActiveShiftError)
    ses.open_shift(0, now=NOW).unwrap()
    assert isinstance(ses.cancel("nope").error, NotFoundError)

    line = ses.cart.add_item(make_product(10000), 2).unwrap()
    sale = ses.pay([Payment(method="cash", amount=20000)], now=NOW).unwrap()
    req = RefundRequest(original_transaction_id=sale.id, items=[RefundItem(line_id=line.id, quantity=1)])
    refund = ses.refund(req, now=NOW).unwrap()

    assert isinstance(ses.cancel(refund.id).error, TransactionNotCancellableError)
    assert isinstance(ses.cancel(sale.id).error, TransactionNotCancellableError)

    ses.cart.add_item(make_product(3000), 1)
    earlier = ses.pay([Payment(method="cash", amount=3000)], now=NOW).unwrap()
    ses.close_shift(13000).unwrap()
    ses.open_shift(0, now=NOW).unwrap()
    # sales of an earlier shift stay as they are
    res = ses.cancel(earlier.id)
    assert isinstance(res.error, TransactionNotCancellableError)
    assert ses.log.get(earlier.id).status == "paid"
