"""Pytest fixtures for storefront tests."""

import os

# must be set before storefront.core.config is imported
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["KAFKA_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.core.config import settings
from storefront.db import models
from storefront.db.models import DiscountType, utcnow
from storefront.db.session import Base

CUSTOMER = "cust@example.com"
OTHER_CUSTOMER = "other@example.com"
ADMIN = "admin@example.com"

ADDRESS = {
    "full_name": "Asha Rao",
    "address_line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "country": "IN",
    "postcode": "560001",
    "phone": "9999999999",
}


class FakeRedis:
    """Hash-only stand-in for the cart store's Redis client."""

    def __init__(self):
        self.hashes = {}

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hdel(self, key, *fields):
        bucket = self.hashes.get(key, {})
        return sum(1 for f in fields if bucket.pop(f, None) is not None)

    def delete(self, key):
        return 1 if self.hashes.pop(key, None) is not None else 0


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def shop(db):
    """Protein powder with flavor x weight axes, plus a single-SKU shaker.

    Only (Vanilla, 500g) and (Chocolate, 1kg) are purchasable: Vanilla 1kg is
    sold out and Chocolate 500g is inactive.
    """
    vanilla = models.Flavor(name="Vanilla")
    chocolate = models.Flavor(name="Chocolate")
    g500 = models.Weight(value=500, unit="g")
    kg1 = models.Weight(value=1, unit="kg")
    db.add_all([vanilla, chocolate, g500, kg1])
    db.flush()

    powder = models.Product(name="Whey Protein", slug="whey-protein", description="Fast absorbing whey")
    powder.flavor_options = [
        models.ProductFlavorOption(flavor_id=vanilla.id, position=0),
        models.ProductFlavorOption(flavor_id=chocolate.id, position=1),
    ]
    powder.weight_options = [
        models.ProductWeightOption(weight_id=g500.id, position=0),
        models.ProductWeightOption(weight_id=kg1.id, position=1),
    ]
    van_500 = models.ProductVariant(flavor_id=vanilla.id, weight_id=g500.id, sku="WP-VAN-500",
                                    price_cents=50000, quantity=5, is_active=True)
    van_1kg = models.ProductVariant(flavor_id=vanilla.id, weight_id=kg1.id, sku="WP-VAN-1KG",
                                    price_cents=90000, quantity=0, is_active=True)
    choc_500 = models.ProductVariant(flavor_id=chocolate.id, weight_id=g500.id, sku="WP-CHO-500",
                                     price_cents=50000, quantity=10, is_active=False)
    choc_1kg = models.ProductVariant(flavor_id=chocolate.id, weight_id=kg1.id, sku="WP-CHO-1KG",
                                     price_cents=95000, sale_price_cents=85000, quantity=3, is_active=True)
    powder.variants = [van_500, van_1kg, choc_500, choc_1kg]

    shaker = models.Product(name="Shaker Bottle", slug="shaker-bottle",
                            created_at=utcnow() - timedelta(days=1))
    shaker_variant = models.ProductVariant(sku="SHAKER", price_cents=20000, quantity=1, is_active=True)
    shaker.variants = [shaker_variant]

    save10 = models.Coupon(code="SAVE10", discount_type=DiscountType.PERCENTAGE, discount_value=10,
                           min_order_cents=50000, start_date=utcnow() - timedelta(days=1), is_active=True)
    db.add_all([powder, shaker, save10])
    db.commit()

    return SimpleNamespace(
        powder=powder, shaker=shaker, save10=save10,
        vanilla=vanilla, chocolate=chocolate, g500=g500, kg1=kg1,
        van_500=van_500, van_1kg=van_1kg, choc_500=choc_500, choc_1kg=choc_1kg,
        shaker_variant=shaker_variant,
    )


@pytest.fixture
def address():
    from storefront.schemas import ShippingAddress
    return ShippingAddress(**ADDRESS)


@pytest.fixture
def events(monkeypatch):
    """Record published order events instead of talking to Kafka."""
    from storefront.kafka import producer

    sent = []
    monkeypatch.setattr(settings, "KAFKA_ENABLED", True)
    monkeypatch.setattr(producer, "send", lambda topic, key, value: sent.append((topic, key, value)))
    return sent


@pytest.fixture
def fake_redis(monkeypatch):
    from storefront.store import cart_store

    fake = FakeRedis()
    monkeypatch.setattr(cart_store, "get_client", lambda: fake)
    return fake


def make_token(sub: str, role: str = "customer") -> str:
    payload = {
        "sub": sub,
        "role": role,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {make_token(CUSTOMER)}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(ADMIN, role='admin')}"}


@pytest.fixture
def client(session_factory, fake_redis):
    from storefront.api.deps import get_db
    from storefront.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
