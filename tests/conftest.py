import os

# settings are read at import time; point them at SQLite before anything imports the app
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from order_service.api.deps import get_db
from order_service.api.schemas import LineItemIn
from order_service.db.models import ProductVariant, Voucher
from order_service.db.session import Base
from order_service.main import app
from order_service.services.policy import Principal, Role


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def catalog(db):
    """Variant A: 100 cents, variant B: 50 cents, both with 10 in stock."""
    a = ProductVariant(sku="A", title="Variant A", price_cents=100, in_stock=10)
    b = ProductVariant(sku="B", title="Variant B", price_cents=50, in_stock=10)
    db.add_all([a, b])
    db.commit()
    return {"A": a.id, "B": b.id}


@pytest.fixture()
def make_voucher(db):
    def _make(code="SAVE80", discount_cents=80, quantity=5, is_active=True):
        v = Voucher(code=code, discount_cents=discount_cents, quantity=quantity, is_active=is_active)
        db.add(v)
        db.commit()
        return v
    return _make


@pytest.fixture()
def customer():
    return Principal(user_id=10, role=Role.USER)


@pytest.fixture()
def other_customer():
    return Principal(user_id=11, role=Role.USER)


@pytest.fixture()
def staff():
    return Principal(user_id=1, role=Role.STAFF)


@pytest.fixture()
def admin():
    return Principal(user_id=2, role=Role.ADMIN)


def items(*pairs):
    """items((variant_id, qty), ...) -> list of LineItemIn"""
    return [LineItemIn(variant_id=v, qty=q) for v, q in pairs]


def stock(db, variant_id):
    db.expire_all()
    return db.get(ProductVariant, variant_id).in_stock


def token_for(user_id, role, type_="access"):
    return jwt.encode({"sub": str(user_id), "role": role, "type": type_}, "test-secret", algorithm="HS256")


def auth(user_id, role):
    return {"Authorization": f"Bearer {token_for(user_id, role)}"}
