from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.persistence.pg as pg
from storefront.checkout.flow import CheckoutContext
from storefront.checkout.models import PaymentMethod, PaymentSelection, ShippingAddress
from storefront.checkout.validation import ValidationRules
from storefront.core.config import get_settings
from storefront.persistence.models import Base
from storefront.pricing.aggregator import CartItem, PricingAggregator
from storefront.pricing.coupons import Coupon, CouponEngine, InMemoryCouponStore
from storefront.shipping.quotes import ShippingQuoteCalculator
from storefront.shipping.zones import ZoneResolver

# Wednesday.
FIXED_NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.coupon_backend = "local"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(configure_test_engine):
    from storefront.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def coupons() -> list[Coupon]:
    return [
        Coupon(code="SAVE10", kind="percentage", value=Decimal("10")),
        Coupon(code="FLAT500", kind="flat", value=Decimal("500"), min_subtotal=Decimal("2000")),
        Coupon(code="BIGFLAT", kind="flat", value=Decimal("1000")),
        Coupon(
            code="HALFCAP",
            kind="percentage",
            value=Decimal("50"),
            max_discount=Decimal("750"),
        ),
        Coupon(
            code="OLD",
            kind="flat",
            value=Decimal("100"),
            expires_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture()
def coupon_engine(coupons) -> CouponEngine:
    return CouponEngine(InMemoryCouponStore(coupons))


@pytest.fixture()
def calculator() -> ShippingQuoteCalculator:
    return ShippingQuoteCalculator()


@pytest.fixture()
def ctx(coupon_engine, calculator) -> CheckoutContext:
    return CheckoutContext(
        resolver=ZoneResolver(),
        calculator=calculator,
        aggregator=PricingAggregator(coupon_engine),
        rules=ValidationRules(),
    )


@pytest.fixture()
def cart() -> list[CartItem]:
    return [
        CartItem(product_id="p-100", name="Cotton Kurta", price=Decimal("1500"), quantity=2),
        CartItem(product_id="p-200", name="Leather Sandals", price=Decimal("999.50"), quantity=1),
    ]


@pytest.fixture()
def lahore_address() -> ShippingAddress:
    return ShippingAddress(
        full_name="Ayesha Khan",
        email="ayesha@example.com",
        phone="03001234567",
        street="12 Main Boulevard, Gulberg III",
        city="Lahore",
        state="Punjab",
        postal_code="54000",
        country="Pakistan",
    )


@pytest.fixture()
def card_payment() -> PaymentSelection:
    return PaymentSelection(
        method=PaymentMethod.CARD,
        card_number="4242 4242 4242 4242",
        card_name="Ayesha Khan",
        expiry="12/29",
        cvv="123",
    )
