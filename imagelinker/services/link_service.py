"""Turn matches into confirmed image links or review candidates."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from imagelinker.extensions import db
from imagelinker.models.image import ProductImage
from imagelinker.models.candidate import ImageCandidate
from imagelinker.models.audit_log import AuditLog
from imagelinker.services import storage_service

logger = logging.getLogger(__name__)

PIPELINE_ACTOR = "image-linker"


class WriteAction(str, Enum):
    LINK = "link"
    CANDIDATE = "candidate"
    SKIPPED = "skipped"


class CandidateStateError(Exception):
    """The candidate was already reviewed."""


@dataclass(frozen=True)
class WriteOutcome:
    created: WriteAction
    reason: str = None
    record_id: int = None


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one item in a best-effort loop: a value or an error message."""

    key: str
    outcome: object = None
    error: str = None

    @property
    def ok(self):
        return self.error is None


def product_has_active_image(product_id):
    return (
        db.session.query(ProductImage.id)
        .filter_by(product_id=product_id, image_status="active")
        .first()
        is not None
    )


def pending_candidate_exists(product_id, storage_key):
    return (
        db.session.query(ImageCandidate.id)
        .filter_by(product_id=product_id, storage_key=storage_key, status="pending")
        .first()
        is not None
    )


def _match_metadata(match, session_id):
    return {
        "filename": match.image.filename,
        "storage_key": match.image.name,
        "extraction_method": match.extraction_source.value,
        "extracted_sku": match.extracted_sku,
        "matched_product_sku": match.product.sku,
        "session_id": session_id,
    }


def apply_match(match, session_id, auto_confirm_confidence=None, review_confidence=None):
    """Persist one match according to its confidence.

    - product already has an active image: skipped
    - >= auto_confirm_confidence: primary ProductImage, auto_matched
    - >= review_confidence: pending ImageCandidate
    - below that: skipped

    Database errors propagate; callers looping over many matches should use
    write_matches().
    """
    if auto_confirm_confidence is None:
        auto_confirm_confidence = current_app.config["IMAGE_LINK_AUTO_CONFIRM_CONFIDENCE"]
    if review_confidence is None:
        review_confidence = current_app.config["IMAGE_LINK_REVIEW_CONFIDENCE"]

    product = match.product
    image = match.image
    confidence = match.sku_confidence

    if product_has_active_image(product.id):
        return WriteOutcome(WriteAction.SKIPPED, "product already has an active image")

    if confidence < review_confidence:
        return WriteOutcome(
            WriteAction.SKIPPED,
            f"confidence {confidence} below review threshold {review_confidence}",
        )

    image_url = storage_service.get_public_url(image.name)
    alt_text = f"{product.name} ({product.sku})"
    metadata = _match_metadata(match, session_id)

    if confidence >= auto_confirm_confidence:
        record = ProductImage(
            product_id=product.id,
            storage_key=image.name,
            image_url=image_url,
            alt_text=alt_text,
            image_status="active",
            is_primary=True,
            sort_order=1,
            match_confidence=confidence,
            match_metadata=metadata,
            auto_matched=True,
        )
        db.session.add(record)
        db.session.commit()
        logger.info(
            "Direct link: %s -> %s (%d%%)", image.name, product.sku, confidence
        )
        return WriteOutcome(WriteAction.LINK, record_id=record.id)

    if pending_candidate_exists(product.id, image.name):
        return WriteOutcome(WriteAction.SKIPPED, "pending candidate already exists")

    record = ImageCandidate(
        product_id=product.id,
        storage_key=image.name,
        image_url=image_url,
        alt_text=alt_text,
        match_confidence=confidence,
        match_metadata=metadata,
        extracted_sku=match.extracted_sku,
        source_filename=image.filename,
        status="pending",
    )
    db.session.add(record)
    db.session.commit()
    logger.info("Candidate: %s -> %s (%d%%)", image.name, product.sku, confidence)
    return WriteOutcome(WriteAction.CANDIDATE, record_id=record.id)


def write_matches(matches, session_id, auto_confirm_confidence=None, review_confidence=None):
    """Apply each match, yielding an ItemResult per match.

    A failed write is rolled back and reported; the loop carries on.
    """
    for match in matches:
        try:
            outcome = apply_match(
                match,
                session_id,
                auto_confirm_confidence=auto_confirm_confidence,
                review_confidence=review_confidence,
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning("Failed to write link for %s: %s", match.image.name, e)
            yield ItemResult(match.image.name, error=f"Failed to write {match.image.name}: {e}")
            continue
        yield ItemResult(match.image.name, outcome=outcome)


# ---------------------------------------------------------------------------
# Candidate review
# ---------------------------------------------------------------------------

def promote_candidate(candidate, actor=PIPELINE_ACTOR):
    """Convert a pending candidate into an active ProductImage.

    The new image only becomes primary when the product has no primary yet.
    """
    if candidate.status != "pending":
        raise CandidateStateError(f"Candidate {candidate.id} is already {candidate.status}")

    has_primary = (
        db.session.query(ProductImage.id)
        .filter_by(product_id=candidate.product_id, image_status="active", is_primary=True)
        .first()
        is not None
    )
    last_sort = (
        db.session.query(db.func.max(ProductImage.sort_order))
        .filter(ProductImage.product_id == candidate.product_id)
        .scalar()
    ) or 0

    metadata = dict(candidate.match_metadata or {})
    metadata["promoted_from_candidate"] = candidate.id
    metadata["promoted_by"] = actor

    image = ProductImage(
        product_id=candidate.product_id,
        storage_key=candidate.storage_key,
        image_url=candidate.image_url,
        alt_text=candidate.alt_text,
        image_status="active",
        is_primary=not has_primary,
        sort_order=last_sort + 1,
        match_confidence=candidate.match_confidence,
        match_metadata=metadata,
        auto_matched=actor == PIPELINE_ACTOR,
    )
    db.session.add(image)
    db.session.flush()  # get image.id

    candidate.status = "promoted"
    candidate.promoted_image_id = image.id
    candidate.reviewed_by = actor
    candidate.reviewed_at = datetime.now(timezone.utc)

    db.session.add(
        AuditLog(
            actor=actor,
            action="PROMOTE_CANDIDATE",
            product_id=candidate.product_id,
            payload={
                "candidate_id": candidate.id,
                "image_id": image.id,
                "confidence": candidate.match_confidence,
            },
        )
    )
    db.session.commit()
    return image


def reject_candidate(candidate, actor):
    if candidate.status != "pending":
        raise CandidateStateError(f"Candidate {candidate.id} is already {candidate.status}")

    candidate.status = "rejected"
    candidate.reviewed_by = actor
    candidate.reviewed_at = datetime.now(timezone.utc)
    db.session.add(
        AuditLog(
            actor=actor,
            action="REJECT_CANDIDATE",
            product_id=candidate.product_id,
            payload={"candidate_id": candidate.id},
        )
    )
    db.session.commit()
    return candidate


def promote_pending_candidates(min_confidence, actor=PIPELINE_ACTOR):
    """Promote every pending candidate at or above ``min_confidence``.

    The query itself may raise SQLAlchemyError; individual promotions never do.
    """
    candidates = (
        ImageCandidate.query.filter(
            ImageCandidate.status == "pending",
            ImageCandidate.match_confidence >= min_confidence,
        )
        .order_by(ImageCandidate.match_confidence.desc(), ImageCandidate.id)
        .all()
    )
    results = []
    for candidate in candidates:
        key = f"candidate:{candidate.id}"
        try:
            image = promote_candidate(candidate, actor=actor)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning("Failed to promote candidate %s: %s", key, e)
            results.append(ItemResult(key, error=f"Failed to promote {key}: {e}"))
            continue
        logger.info("Promoted %s (%d%%)", key, image.match_confidence)
        results.append(ItemResult(key, outcome=image.id))
    return results
