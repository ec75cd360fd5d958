"""SQLAlchemy repository for the product catalog.

This module provides read access to products for order creation: given a
product id it returns price, seller and stock. Stock is reported as stored
and is never decremented by order placement.

Products can be loaded at startup from the JSON file named by
``CATALOG_SEED_FILE`` (a list of ``{id, seller_id, price, stock, title}``
objects); see ``seed_products.json``.

The connection string comes from ``CATALOG_DATABASE_URL`` when set, and is
otherwise assembled from the ``DB_*`` environment variables (PostgreSQL
through psycopg).
"""

import json
import os
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, Numeric, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "catalog-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "catalog")
DB_USER = os.getenv("DB_USER", "catalog_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "catalog-pass")

DATABASE_URL = os.getenv(
    "CATALOG_DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase):
    pass


class Product(Base):
    """SQLAlchemy model for a sellable product.

    Attributes:
        id: Product identifier (primary key).
        seller_id: Identifier of the seller who owns the listing.
        title: Display title.
        price: Unit price, two decimals.
        stock: Units available (informational).
    """

    __tablename__ = "products"
    id = mapped_column(String(64), primary_key=True)
    seller_id = mapped_column(String(64), nullable=False, index=True)
    title = mapped_column(String(255), nullable=False, default="")
    price = mapped_column(Numeric(12, 2), nullable=False)
    stock = mapped_column(Integer, nullable=False, default=0)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Context manager that yields a SQLAlchemy session.

    The session is automatically closed when exiting the context.
    """
    with Session(engine) as s:
        yield s


class ProductRepo:
    """Repository class for catalog lookups."""

    def get(self, product_id: str) -> Optional[dict]:
        """Return ``{id, seller_id, title, price, stock}`` or None if unknown."""
        with get_session() as s:
            obj = s.get(Product, product_id)
            if obj is None:
                return None
            return {
                "id": obj.id,
                "seller_id": obj.seller_id,
                "title": obj.title,
                "price": Decimal(obj.price),
                "stock": obj.stock,
            }

    def upsert(self, product_id: str, seller_id: str, price: Decimal, stock: int = 0, title: str = "") -> None:
        """Create or replace a product row."""
        with get_session() as s:
            s.merge(Product(id=product_id, seller_id=seller_id, title=title, price=price, stock=stock))
            s.commit()


def seed_from_file(path: str) -> int:
    """Upsert every product listed in a JSON file.

    Args:
        path: File holding a JSON list of product objects with ``id``,
            ``seller_id`` and ``price``; ``stock`` and ``title`` are optional.

    Returns:
        int: Number of products written.

    Raises:
        ValueError: When the file is not a list or an entry lacks a field.
    """
    with open(path, encoding="utf-8") as fh:
        rows = json.load(fh)
    if not isinstance(rows, list):
        raise ValueError("Seed file must contain a JSON list")

    repo = ProductRepo()
    for row in rows:
        try:
            repo.upsert(
                str(row["id"]),
                seller_id=str(row["seller_id"]),
                price=Decimal(str(row["price"])),
                stock=int(row.get("stock", 0)),
                title=row.get("title", ""),
            )
        except (KeyError, TypeError, ArithmeticError) as e:
            raise ValueError(f"Invalid product entry {row!r}") from e
    return len(rows)
