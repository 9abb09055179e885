"""Load the products the image linker is allowed to match against."""
import logging
from dataclasses import dataclass, field
from sqlalchemy.exc import SQLAlchemyError
from imagelinker.extensions import db
from imagelinker.models.product import Product
from imagelinker.models.image import ProductImage

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """The catalog could not be read; the linking run cannot continue."""


@dataclass(frozen=True)
class CatalogProduct:
    """Detached snapshot of a product row, safe to hold across commits."""

    id: int
    sku: str
    name: str


@dataclass
class CatalogScan:
    all_products: list = field(default_factory=list)
    products_needing_images: list = field(default_factory=list)


def scan_catalog():
    """Active products with a SKU, split by whether they still need an image.

    Raises:
        CatalogError if either catalog query fails
    """
    try:
        rows = (
            db.session.query(Product.id, Product.sku, Product.name)
            .filter(
                Product.is_active.is_(True),
                Product.sku.isnot(None),
                Product.sku != "",
            )
            .order_by(Product.id)
            .all()
        )
        with_images = {
            product_id
            for (product_id,) in db.session.query(ProductImage.product_id)
            .filter(ProductImage.image_status == "active")
            .distinct()
        }
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Catalog read failed")
        raise CatalogError(f"Failed to fetch products: {e}") from e

    all_products = [
        CatalogProduct(id=row.id, sku=row.sku.strip(), name=row.name)
        for row in rows
        if row.sku.strip()
    ]
    needing = [p for p in all_products if p.id not in with_images]

    logger.info(
        "Catalog: %d active products with SKUs, %d need images",
        len(all_products),
        len(needing),
    )
    return CatalogScan(all_products=all_products, products_needing_images=needing)
