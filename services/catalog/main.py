"""Catalog service API built with FastAPI.

This module exposes the product lookup used by the orders web service at
order creation time, plus a health probe. Persistence is delegated to the
SQLAlchemy-backed repository in ``repo.ProductRepo``.
"""

import logging
import os
import time
import uuid
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import ProductRepo, engine, init_db, seed_from_file

app = FastAPI(title="Catalog Service")

logger = logging.getLogger("catalog")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # short wait until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()
    seed_file = os.getenv("CATALOG_SEED_FILE")
    if seed_file:
        count = seed_from_file(seed_file)
        logger.info("catalog seeded", extra={"request_id": "-", "products": count, "seed_file": seed_file})


class ProductOut(BaseModel):
    """Product snapshot returned to the orders service.

    Attributes:
        id: Product identifier.
        seller_id: Owner of the listing.
        price: Current unit price.
        stock: Units available; reported only.
    """

    id: str
    seller_id: str
    price: float
    stock: int = Field(ge=0)


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str):
    """Return price and seller of a product.

    Raises:
        HTTPException: 404 when the product does not exist.
    """
    row = ProductRepo().get(product_id)
    if row is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return ProductOut(
        id=row["id"],
        seller_id=row["seller_id"],
        price=float(Decimal(row["price"])),
        stock=max(0, row["stock"]),
    )


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
