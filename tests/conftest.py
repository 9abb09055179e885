from unittest.mock import MagicMock, patch
import pytest
from imagelinker import create_app
from imagelinker.extensions import db as _db
from imagelinker.models.product import Product


@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()


@pytest.fixture
def db(app):
    """Per-test database. Services commit, so tables are emptied afterwards."""
    yield _db
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.remove()


@pytest.fixture
def client(app, db):
    return app.test_client()


@pytest.fixture
def make_product(db):
    def _make(sku, name=None, is_active=True):
        product = Product(sku=sku, name=name or f"Product {sku}", is_active=is_active)
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def bucket():
    """Patch the S3 client. Call the fixture with a list of keys to fill it."""
    client = MagicMock()

    def _fill(keys):
        client.list_objects_v2.return_value = {
            "Contents": [{"Key": key, "Size": 2048} for key in keys],
            "IsTruncated": False,
        }
        return client

    with patch("imagelinker.services.storage_service._get_client", return_value=client):
        yield _fill
