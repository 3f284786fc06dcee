from decimal import Decimal

from pos_core.core.errors import NotFoundError, ValidationError
from pos_core.core.schemas import Discount
from pos_core.services.cart import Cart


def test_line_discount_then_tax(make_product):
    cart = Cart(tax_rate=Decimal("0.11"))
    line = cart.add_item(make_product(50000), 2).unwrap()
    cart.update_line_discount(line.id, 10).unwrap()

    assert line.line_total == Decimal("90000")
    assert cart.subtotal == Decimal("90000")
    assert cart.discount_amount == 0
    assert cart.tax_amount == Decimal("9900")
    assert cart.total_amount == Decimal("99900")
    assert cart.amount_due == Decimal("99900")


def test_recalculate_is_idempotent(make_product):
    cart = Cart(tax_rate=Decimal("0.11"))
    cart.add_item(make_product(12345), 3)
    cart.apply_cart_discount(Discount(type="percentage", value=7))
    first = cart.recalculate()
    assert cart.recalculate() == first


def test_cart_discount_applies_before_tax(make_product):
    cart = Cart(tax_rate=Decimal("0.11"))
    cart.add_item(make_product(100000), 1)
    cart.apply_cart_discount(Discount(type="fixed_amount", value=20000))
    t = cart.rounded_totals()
    assert t.subtotal == Decimal("100000")
    assert t.discount_amount == Decimal("20000")
    assert t.tax_amount == Decimal("8800")
    assert t.total_amount == Decimal("88800")

    cart.remove_cart_discount().unwrap()
    assert cart.discount is None and cart.total_amount == Decimal("111000")


def test_same_product_lines_merge(make_product):
    cart = Cart(tax_rate=0)
    p = make_product(15000)
    cart.add_item(p, 1)
    cart.add_item(p, 2)
    assert cart.item_count == 1
    assert cart.total_quantity == 3
    assert cart.total_amount == Decimal("45000")


def test_removing_every_line_resets_cart(make_product):
    cart = Cart(tax_rate=Decimal("0.11"))
    a = cart.add_item(make_product(10000), 1).unwrap()
    b = cart.add_item(make_product(20000), 2).unwrap()
    cart.apply_cart_discount(Discount(type="percentage", value=10))

    cart.remove_item(a.id).unwrap()
    cart.remove_item(b.id).unwrap()

    assert cart.is_empty
    assert cart.discount is None
    assert (cart.subtotal, cart.discount_amount, cart.tax_amount, cart.total_amount) == (0, 0, 0, 0)


def test_quantity_zero_removes_line(make_product):
    cart = Cart(tax_rate=0)
    line = cart.add_item(make_product(5000), 4).unwrap()
    cart.update_quantity(line.id, 0).unwrap()
    assert cart.is_empty


def test_line_discount_percent_is_clamped(make_product):
    cart = Cart(tax_rate=0)
    line = cart.add_item(make_product(10000), 1).unwrap()

    cart.update_line_discount(line.id, 150)
    assert line.discount_percent == 100 and cart.total_amount == 0

    cart.update_line_discount(line.id, -5)
    assert line.discount_percent == 0 and cart.total_amount == Decimal("10000")


def test_bad_quantity_and_unknown_line(make_product):
    cart = Cart(tax_rate=0)
    res = cart.add_item(make_product(10000), 0)
    assert not res.ok and isinstance(res.error, ValidationError)
    assert cart.is_empty

    res = cart.update_quantity("missing", 2)
    assert isinstance(res.error, NotFoundError) and res.error.status_code == 404

    line = cart.add_item(make_product(10000), 1).unwrap()
    res = cart.update_line_discount_amount(line.id, -1)
    assert isinstance(res.error, ValidationError)
    assert line.discount_amount == 0


def test_snapshot_rounds_line_totals(make_product):
    cart = Cart(tax_rate=0)
    line = cart.add_item(make_product(333), 1).unwrap()
    cart.update_line_discount(line.id, Decimal("12.5"))
    (snap,) = cart.snapshot()
    assert snap.line_total == Decimal("291")
    assert snap.product_name == "Kopi Susu"


def test_rounded_subtotal_matches_snapshot_lines(make_product):
    cart = Cart(tax_rate=0)
    for pid in ("a", "b"):
        line = cart.add_item(make_product(12345, pid=pid), 1).unwrap()
        cart.update_line_discount(line.id, 10)

    lines = cart.snapshot()
    assert [l.line_total for l in lines] == [Decimal("11111"), Decimal("11111")]
    t = cart.rounded_totals()
    assert t.subtotal == sum(l.line_total for l in lines) == Decimal("22222")
    assert t.total_amount == Decimal("22222")


def test_rounded_totals_add_up_with_discount_and_tax(make_product):
    cart = Cart(tax_rate=Decimal("0.11"))
    for pid in ("a", "b"):
        line = cart.add_item(make_product(12345, pid=pid), 1).unwrap()
        cart.update_line_discount(line.id, 10)
    cart.apply_cart_discount(Discount(type="percentage", value=5))

    t = cart.rounded_totals()
    assert t.discount_amount == Decimal("1111")
    assert t.tax_amount == Decimal("2322")
    assert t.total_amount == t.subtotal - t.discount_amount + t.tax_amount == Decimal("23433")
