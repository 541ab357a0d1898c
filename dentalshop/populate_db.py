import argparse
import logging
import os
from decimal import Decimal

import pandas as pd

from dentalshop.database import SessionLocal, init_db
from dentalshop.models.product import Product, ProductInclusion
from dentalshop.models.users import User
from dentalshop.utils.hashing import get_password_hash
from dentalshop.utils.pricing import money

logger = logging.getLogger(__name__)

# Configuration
DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
DEFAULT_CATALOG = os.path.join(DATA_DIR, "catalog.csv")
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@dentalshop.ph")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin12345")
# End Configuration

COLUMNS = ["name", "description", "price", "stock", "category", "image_url", "featured", "inclusions"]
TRUE_VALUES = {"1", "true", "yes", "y"}


def _text(value):
    if pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def parse_inclusions(raw):
    """Parse ``name:price|name:price`` into (name, price) pairs."""
    text = _text(raw)
    if not text:
        return []
    parsed = []
    for chunk in text.split("|"):
        name, sep, price = chunk.rpartition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid inclusion entry '{chunk}'")
        parsed.append((name.strip(), money(Decimal(price.strip()))))
    return parsed


def load_catalog(path: str) -> pd.DataFrame:
    # Read everything as text so prices never pass through float
    df = pd.read_csv(path, dtype=str, keep_default_na=True)
    missing = [c for c in ("name", "price") if c not in df.columns]
    if missing:
        raise ValueError(f"Catalog file is missing columns: {', '.join(missing)}")
    for column in COLUMNS:
        if column not in df.columns:
            df[column] = None

    df["name"] = df["name"].str.strip()
    df = df[df["name"].notna() & (df["name"] != "")]
    df = df.drop_duplicates(subset=["name"], keep="first")
    return df[COLUMNS]


def ensure_admin(session) -> User:
    admin = session.query(User).filter(User.role == "admin").first()
    if admin:
        return admin
    admin = User(email=ADMIN_EMAIL, password_hash=get_password_hash(ADMIN_PASSWORD), role="admin", name="Administrator")
    session.add(admin)
    session.flush()
    logger.info("Created admin user %s", ADMIN_EMAIL)
    return admin


def seed_products(session, df: pd.DataFrame) -> int:
    existing = {name for (name,) in session.query(Product.name).all()}
    inserted = 0

    for _, row in df.iterrows():
        if row["name"] in existing:
            logger.info("Skipping existing product %s", row["name"])
            continue

        product = Product(
            name=row["name"],
            description=_text(row["description"]),
            category=_text(row["category"]),
            price=money(Decimal(str(row["price"]).strip())),
            stock=int(_text(row["stock"]) or 0),
            image_url=_text(row["image_url"]),
            featured=(_text(row["featured"]) or "").lower() in TRUE_VALUES,
        )
        product.inclusions = [
            ProductInclusion(name=name, price=price) for name, price in parse_inclusions(row["inclusions"])
        ]
        session.add(product)
        existing.add(product.name)
        inserted += 1

    return inserted


def populate_database(path: str = DEFAULT_CATALOG) -> int:
    """Main execution function to populate database."""
    init_db()
    df = load_catalog(path)

    session = SessionLocal()
    try:
        ensure_admin(session)
        inserted = seed_products(session, df)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Inserted %d products from %s", inserted, path)
    return inserted


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Seed the dental shop catalog from a CSV file")
    parser.add_argument("csv", nargs="?", default=DEFAULT_CATALOG)
    populate_database(parser.parse_args().csv)
