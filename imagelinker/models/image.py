from datetime import datetime, timezone
from imagelinker.extensions import db


class ProductImage(db.Model):
    """Confirmed product-image association."""

    __tablename__ = "product_images"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    storage_key = db.Column(db.String(1024), nullable=False)
    image_url = db.Column(db.String(2048), nullable=False)
    alt_text = db.Column(db.String(512))
    image_status = db.Column(db.String(20), nullable=False, default="active")
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=1)
    match_confidence = db.Column(db.Integer)
    match_metadata = db.Column(db.JSON, default=dict)
    auto_matched = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        # At most one active primary image per product
        db.Index(
            "uq_product_images_primary",
            "product_id",
            unique=True,
            postgresql_where=db.text("is_primary AND image_status = 'active'"),
            sqlite_where=db.text("is_primary = 1 AND image_status = 'active'"),
        ),
    )

    STATUSES = {"active", "inactive"}

    def __repr__(self):
        return f"<ProductImage {self.storage_key} -> {self.product_id}>"
