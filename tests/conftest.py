"""Pytest fixtures for watchshop tests."""

import base64
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from itsdangerous import TimestampSigner
from sqlalchemy import func, select

from watchshop import config
from watchshop.db import Database
from watchshop.main import create_app
from watchshop.models import Brand, Category, Product, User
from watchshop.utils.enums import UserRole


@pytest.fixture
def database(tmp_path):
    """A fresh SQLite database file with all tables."""
    db = Database("sqlite:///{0}".format((tmp_path / "shop.db").as_posix()))
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def catalog(database):
    """Two brands, three watches and three users. Returns plain ids only."""
    session = database.session()
    try:
        rolex = Brand(name="Rolex", slug="rolex", country="Switzerland")
        omega = Brand(name="Omega", slug="omega", country="Switzerland")
        dress = Category(name="Dress", slug="dress")
        session.add_all([rolex, omega, dress])
        session.flush()

        submariner = Product(
            name="Rolex Submariner 1967", reference_number="5513", price=Decimal("15000.00"),
            stock_quantity=3, brand_id=rolex.id, category_id=dress.id,
        )
        speedmaster = Product(
            name="Omega Speedmaster 1969", reference_number="145.022", price=Decimal("4000.00"),
            stock_quantity=2, brand_id=omega.id, category_id=dress.id,
        )
        constellation = Product(
            name="Omega Constellation", reference_number="168.005", price=Decimal("2500.00"),
            stock_quantity=10, brand_id=omega.id, category_id=dress.id,
        )
        alice = User(email="alice@example.com", first_name="Alice", last_name="Moore")
        bob = User(email="bob@example.com", first_name="Bob", last_name="Stone")
        admin = User(email="admin@example.com", first_name="Ada", last_name="Admin", role=UserRole.ADMIN.value)
        session.add_all([submariner, speedmaster, constellation, alice, bob, admin])
        session.flush()

        ids = SimpleNamespace(
            rolex=rolex.id,
            omega=omega.id,
            submariner=submariner.id,
            speedmaster=speedmaster.id,
            constellation=constellation.id,
            alice=alice.id,
            bob=bob.id,
            admin=admin.id,
        )
        session.commit()
    finally:
        session.close()
    return ids


@pytest.fixture
def app(database):
    return create_app(database, create_tables=False)


@pytest.fixture
def client(app):
    return TestClient(app)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def session_cookie(data: dict, secret: str = config.SECRET_KEY) -> str:
    """Signed cookie value as Starlette's SessionMiddleware writes it."""
    payload = base64.b64encode(json.dumps(data).encode("utf-8"))
    return TimestampSigner(secret).sign(payload).decode("utf-8")


def login(client: TestClient, user_id: int, role: str = UserRole.CUSTOMER.value) -> TestClient:
    # drop the cookie the middleware echoed back for the previous user
    client.cookies.clear()
    client.cookies.set("session", session_cookie({"user_id": user_id, "role": role}))
    return client


def address(**overrides) -> dict:
    data = {
        "first_name": "Alice",
        "last_name": "Moore",
        "company": None,
        "address_line_1": "12 Clockmaker Lane",
        "address_line_2": "Apt 4",
        "city": "Geneva",
        "state": "GE",
        "postal_code": "1204",
        "country": "CH",
        "phone": "+41 22 000 00 00",
    }
    data.update(overrides)
    return data


def cart_line(product_id: int, price, quantity: int = 1, name: str = "Watch", brand: str = "Brand") -> dict:
    return {"id": product_id, "name": name, "brand": brand, "price": str(price), "quantity": quantity}


def count_rows(database: Database, model) -> int:
    session = database.session()
    try:
        return session.scalar(select(func.count()).select_from(model))
    finally:
        session.close()


def stock_of(database: Database, product_id: int) -> int:
    session = database.session()
    try:
        return session.get(Product, product_id).stock_quantity
    finally:
        session.close()
