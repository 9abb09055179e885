from datetime import datetime, timezone
from imagelinker.extensions import db


class ImageCandidate(db.Model):
    """Suggested product-image association waiting for human review."""

    __tablename__ = "product_image_candidates"

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
    match_confidence = db.Column(db.Integer, nullable=False)
    match_metadata = db.Column(db.JSON, default=dict)
    extracted_sku = db.Column(db.String(64))
    source_filename = db.Column(db.String(1024))
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    promoted_image_id = db.Column(
        db.Integer,
        db.ForeignKey("product_images.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_by = db.Column(db.String(100))
    reviewed_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    STATUSES = {"pending", "promoted", "rejected"}

    def to_dict(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "storageKey": self.storage_key,
            "imageUrl": self.image_url,
            "altText": self.alt_text,
            "matchConfidence": self.match_confidence,
            "matchMetadata": self.match_metadata or {},
            "extractedSku": self.extracted_sku,
            "status": self.status,
            "promotedImageId": self.promoted_image_id,
            "reviewedBy": self.reviewed_by,
        }

    def __repr__(self):
        return f"<ImageCandidate {self.source_filename} -> {self.product_id} [{self.status}]>"
