# Make the catalog service modules (main.py, repo.py) importable and point
# them at a throwaway SQLite database before they are imported.
import os
import sys
import tempfile
from pathlib import Path

import pytest

SERVICE_DIR = Path(__file__).resolve().parent.parent
p = str(SERVICE_DIR)
if p not in sys.path:
    sys.path.insert(0, p)

_db_dir = tempfile.mkdtemp(prefix="catalog-tests-")
os.environ.setdefault("CATALOG_DATABASE_URL", f"sqlite:///{_db_dir}/catalog.db")


@pytest.fixture(scope="session")
def catalog_db():
    from repo import Base, engine, init_db

    init_db()
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def repo(catalog_db):
    from repo import Product, ProductRepo, get_session

    with get_session() as s:
        s.query(Product).delete()
        s.commit()
    return ProductRepo()


@pytest.fixture
def api(catalog_db):
    from fastapi.testclient import TestClient

    from main import app

    return TestClient(app)
