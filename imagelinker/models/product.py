from datetime import datetime, timezone
from imagelinker.extensions import db


class Product(db.Model):
    """Catalog product. Owned by the storefront; the linker only reads it."""

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    images = db.relationship(
        "ProductImage",
        backref="product",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    image_candidates = db.relationship(
        "ImageCandidate",
        backref="product",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def primary_image(self):
        return self.images.filter_by(image_status="active", is_primary=True).first()

    @property
    def has_active_image(self):
        return self.images.filter_by(image_status="active").first() is not None

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"
