#!/usr/bin/env python3
"""Seed sample catalog products and bucket images for local development."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from imagelinker import create_app
from imagelinker.extensions import db
from imagelinker.models.product import Product
from imagelinker.models.image import ProductImage
from imagelinker.services import storage_service

app = create_app()

# (sku, name, active)
SAMPLE_PRODUCTS = [
    ("12345", "Stoneware Coffee Mug", True),
    ("67890", "Linen Tea Towel", True),
    ("00123", "Brass Bottle Opener", True),
    ("455470", "Gift Box Small", True),
    ("455471", "Gift Box Large", True),
    ("2048", "Walnut Serving Board", True),
    ("31415", "Enamel Pie Dish", True),
    ("99001", "Discontinued Candle", False),
]

# Products that already have a confirmed photo; the linker must leave them alone
ALREADY_LINKED = {"2048"}

# Bucket layout mixing every filename shape the extractor understands
SAMPLE_KEYS = [
    "catalog/12345.jpg",
    "catalog/67890_front.png",
    "catalog/123.jpg",
    "catalog/455470.455471.blue.jpg",
    "catalog/2048.jpg",
    "catalog/31415/front.webp",
    "catalog/99999.jpg",
    "catalog/logo.png",
    "catalog/readme.txt",
]

COLORS = ["c0392b", "2c3e50", "e91e63", "27ae60", "8e44ad", "f39c12"]


def _placeholder_svg(label, color):
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="600" height="800">'
        f'<rect width="100%" height="100%" fill="#{color}"/>'
        '<text x="50%" y="50%" fill="#fff" font-size="48" text-anchor="middle">'
        f"{label}</text></svg>"
    ).encode("utf-8")


def seed_products():
    if Product.query.first():
        print("Products already exist — skipping product seed.")
        return

    for sku, name, active in SAMPLE_PRODUCTS:
        product = Product(sku=sku, name=name, is_active=active)
        db.session.add(product)
        db.session.flush()

        if sku in ALREADY_LINKED:
            storage_key = f"catalog/{sku}.jpg"
            db.session.add(
                ProductImage(
                    product_id=product.id,
                    storage_key=storage_key,
                    image_url=storage_service.get_public_url(storage_key),
                    alt_text=f"{name} ({sku})",
                    is_primary=True,
                    sort_order=1,
                )
            )
        print(f"  Created {sku}: {name}")

    db.session.commit()
    print(f"\nSeeded {len(SAMPLE_PRODUCTS)} products.")


def seed_bucket():
    if not app.config["S3_ENDPOINT_URL"] and not app.config["S3_ACCESS_KEY"]:
        print("S3 not configured — skipping bucket seed.")
        return

    for i, key in enumerate(SAMPLE_KEYS):
        label = key.rsplit("/", 1)[-1]
        content_type = "text/plain" if key.endswith(".txt") else "image/svg+xml"
        storage_service.upload(
            key, _placeholder_svg(label, COLORS[i % len(COLORS)]), content_type
        )
        print(f"  Uploaded {key}")
    print(f"\nUploaded {len(SAMPLE_KEYS)} objects.")


def seed():
    with app.app_context():
        seed_products()
        seed_bucket()


if __name__ == "__main__":
    seed()
