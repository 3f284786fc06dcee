import os
import uuid
from decimal import Decimal

import pytest

# settings are read at import time; keep tests off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TAX_RATE", "0.11")

from pos_core.core.schemas import Product  # noqa: E402
from pos_core.services.session import PosSession  # noqa: E402


@pytest.fixture
def make_product():
    def _make(price, pid=None, name="Kopi Susu", stock=100):
        pid = pid or uuid.uuid4().hex[:8]
        return Product(id=pid, name=name, sku=f"SKU-{pid}", unit_price=Decimal(str(price)), stock_quantity=stock)

    return _make


@pytest.fixture
def untaxed_session():
    return PosSession("kasir-1", "Budi", tax_rate=0)
