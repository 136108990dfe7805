"""Tests for the demo catalog seed."""

from sqlalchemy import func, select

from watchshop.models import Brand, Product, User
from watchshop.seed import WATCHES, seed_demo_catalog


def test_seeds_empty_catalog(db):
    assert seed_demo_catalog(db) == len(WATCHES)

    assert db.scalar(select(func.count()).select_from(Product)) == len(WATCHES)
    assert db.scalar(select(func.count()).select_from(Brand)) == 4
    assert db.scalar(select(User).where(User.email == "demo@watchshop.local")) is not None
    submariner = db.scalar(select(Product).where(Product.reference_number == "5513"))
    assert submariner.name == "Rolex Submariner 1967"
    assert submariner.stock_quantity == 3


def test_second_run_is_skipped(db):
    seed_demo_catalog(db)
    assert seed_demo_catalog(db) == 0
    assert db.scalar(select(func.count()).select_from(Product)) == len(WATCHES)


def test_skips_existing_catalog(db, catalog):
    assert seed_demo_catalog(db) == 0
