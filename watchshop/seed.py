# watchshop/seed.py
import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from watchshop import config
from watchshop.db import Database
from watchshop.logging_config import setup_logging
from watchshop.models.catalog import Brand, Category, Product
from watchshop.models.user import User
from watchshop.utils.enums import UserRole

log = logging.getLogger(__name__)

BRANDS = [
    ("Omega", "omega", "Switzerland"),
    ("Rolex", "rolex", "Switzerland"),
    ("Longines", "longines", "Switzerland"),
    ("Seiko", "seiko", "Japan"),
]

CATEGORIES = [("Dress", "dress"), ("Diver", "diver"), ("Chronograph", "chronograph")]

# (brand slug, category slug, name, reference, price, stock)
WATCHES = [
    ("omega", "chronograph", "Speedmaster Professional 1969", "145.022", "9800.00", 2),
    ("omega", "dress", "Constellation Pie-Pan", "168.005", "3450.00", 3),
    ("rolex", "diver", "Submariner 1967", "5513", "15000.00", 3),
    ("rolex", "dress", "Datejust 1972", "1601", "6200.00", 1),
    ("longines", "dress", "Flagship Automatic", "3401", "1450.00", 5),
    ("seiko", "diver", "6105 Diver", "6105-8110", "2100.00", 4),
]


def seed_demo_catalog(db: Session) -> int:
    """Fills an empty catalog with demo watches; returns how many products were added."""
    if db.scalar(select(func.count()).select_from(Product)):
        log.info("Catalog already has products, seed skipped")
        return 0

    brands = {}
    for name, slug, country in BRANDS:
        b = Brand(name=name, slug=slug, country=country, is_active=True)
        db.add(b)
        brands[slug] = b

    categories = {}
    for name, slug in CATEGORIES:
        c = Category(name=name, slug=slug)
        db.add(c)
        categories[slug] = c
    db.flush()

    for brand_slug, cat_slug, name, ref, price, stock in WATCHES:
        db.add(Product(
            name="{0} {1}".format(brands[brand_slug].name, name),
            slug="{0}-{1}".format(brand_slug, ref.replace(".", "-").lower()),
            reference_number=ref,
            price=Decimal(price),
            stock_quantity=stock,
            is_active=True,
            brand_id=brands[brand_slug].id,
            category_id=categories[cat_slug].id,
        ))

    if not db.scalar(select(User).where(User.email == "demo@watchshop.local")):
        db.add(User(
            email="demo@watchshop.local",
            first_name="Demo",
            last_name="Customer",
            role=UserRole.CUSTOMER.value,
        ))

    db.commit()
    log.info(f"Seeded {len(WATCHES)} watches")
    return len(WATCHES)


def run_seed():
    setup_logging()
    database = Database(config.DATABASE_URL)
    database.create_all()
    db = database.session()
    try:
        seed_demo_catalog(db)
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    run_seed()
