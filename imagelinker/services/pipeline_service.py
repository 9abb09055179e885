"""Image-linking run: promote, scan, list, match, write, summarize."""
import logging
import math
from collections import Counter
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from imagelinker.extensions import db
from imagelinker.services import catalog_service, link_service, storage_service
from imagelinker.services.catalog_service import CatalogError
from imagelinker.services.link_service import WriteAction
from imagelinker.services.matching_service import build_sku_index, match_image
from imagelinker.services.progress_service import ProgressTracker, SessionStateError
from imagelinker.services.storage_service import StorageListingError

logger = logging.getLogger(__name__)

PIPELINE_STEPS = (
    "promote_candidates",
    "scan_products",
    "scan_storage",
    "match",
    "write",
    "summarize",
)
(
    STEP_PROMOTE,
    STEP_SCAN_PRODUCTS,
    STEP_SCAN_STORAGE,
    STEP_MATCH,
    STEP_WRITE,
    STEP_SUMMARIZE,
) = range(len(PIPELINE_STEPS))


class PipelineCancelled(Exception):
    """The session was marked failed out-of-band; stop at the next checkpoint."""


def create_session(session_id, review_confidence=None, auto_confirm_confidence=None):
    """Persist a fresh ``initializing`` session and return its tracker."""
    options = resolve_options(review_confidence, auto_confirm_confidence)
    return ProgressTracker.create(session_id, PIPELINE_STEPS, options=options)


def resolve_options(review_confidence=None, auto_confirm_confidence=None):
    config = current_app.config
    return {
        "review_confidence": (
            config["IMAGE_LINK_REVIEW_CONFIDENCE"]
            if review_confidence is None
            else int(review_confidence)
        ),
        "auto_confirm_confidence": (
            config["IMAGE_LINK_AUTO_CONFIRM_CONFIDENCE"]
            if auto_confirm_confidence is None
            else int(auto_confirm_confidence)
        ),
        "page_size": config["STORAGE_LIST_PAGE_SIZE"],
        "batch_size": config["IMAGE_LINK_BATCH_SIZE"],
    }


def run_pipeline(session_id, review_confidence=None, auto_confirm_confidence=None):
    """Run every step for ``session_id`` and return the final snapshot.

    The session is created if the trigger did not create it already.
    Catalog and storage read failures end the run in ``error``; per-image
    write failures are recorded and skipped. Unexpected exceptions also mark
    the session failed and are re-raised for the job runner.
    """
    tracker = ProgressTracker.load(session_id, PIPELINE_STEPS)
    if tracker is None:
        tracker = create_session(session_id, review_confidence, auto_confirm_confidence)
    options = dict(tracker.row.options or {})
    if not options:
        options = resolve_options(review_confidence, auto_confirm_confidence)

    tracker.start()
    logger.info("Image linking %s started with %s", session_id, options)

    try:
        _checkpoint(tracker)
        _promote_step(tracker, options["auto_confirm_confidence"])

        _checkpoint(tracker)
        tracker.advance(STEP_SCAN_PRODUCTS)
        catalog = catalog_service.scan_catalog()
        tracker.increment(products_scanned=len(catalog.products_needing_images))
        tracker.advance(STEP_SCAN_PRODUCTS, 100)

        _checkpoint(tracker)
        tracker.advance(STEP_SCAN_STORAGE)
        images = storage_service.list_images(page_size=options["page_size"])
        tracker.increment(images_scanned=len(images))
        tracker.advance(STEP_SCAN_STORAGE, 100)

        matches = _match_step(
            tracker, images, catalog.products_needing_images, options["batch_size"]
        )
        outcomes = _write_step(tracker, matches, options)

        _checkpoint(tracker)
        tracker.advance(STEP_SUMMARIZE)
        summary = _summarize(tracker, catalog, images, matches, outcomes)
        tracker.complete(summary)
    except PipelineCancelled:
        logger.warning("Image linking %s cancelled", session_id)
        return tracker.snapshot()
    except SessionStateError:
        # Cancelled after the last checkpoint; the stored status wins
        logger.warning(
            "Image linking %s finished but the session was already %s",
            session_id,
            tracker.row.status,
        )
        return tracker.snapshot()
    except (CatalogError, StorageListingError) as e:
        logger.error("Image linking %s failed: %s", session_id, e)
        tracker.fail(str(e))
        return tracker.snapshot()
    except Exception as e:
        db.session.rollback()
        logger.exception("Image linking %s crashed", session_id)
        tracker.fail(f"Processing failed: {e}")
        raise

    logger.info("Image linking %s complete: %s", session_id, summary)
    return tracker.snapshot()


def _checkpoint(tracker):
    if tracker.is_cancelled():
        raise PipelineCancelled(tracker.session_id)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _promote_step(tracker, min_confidence):
    """Promote leftover high-confidence candidates. Never fatal."""
    step = PIPELINE_STEPS[STEP_PROMOTE]
    tracker.advance(STEP_PROMOTE)
    try:
        results = link_service.promote_pending_candidates(min_confidence)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Could not load candidates to promote")
        tracker.record_error(f"Failed to fetch candidates: {e}", step=step)
        tracker.advance(STEP_PROMOTE, 100)
        return

    promoted = sum(1 for r in results if r.ok)
    tracker.record_errors([r.error for r in results if not r.ok], step=step)
    tracker.increment(candidates_promoted=promoted)
    tracker.advance(STEP_PROMOTE, 100)


def _batches(items, size):
    for start in range(0, len(items), size):
        yield start // size + 1, items[start:start + size]


def _match_step(tracker, images, products, batch_size):
    sku_index = build_sku_index(products)
    total_batches = max(math.ceil(len(images) / batch_size), 1)
    tracker.advance(STEP_MATCH, 0, current_batch=0, total_batches=total_batches)

    matches = []
    for batch_number, batch in _batches(images, batch_size):
        _checkpoint(tracker)
        for image in batch:
            result = match_image(image, sku_index)
            if result is not None:
                matches.append(result)
        tracker.advance(
            STEP_MATCH,
            batch_number / total_batches * 100,
            current_batch=batch_number,
        )

    tracker.advance(STEP_MATCH, 100)
    logger.info("Matched %d of %d images", len(matches), len(images))
    return matches


def _write_step(tracker, matches, options):
    step = PIPELINE_STEPS[STEP_WRITE]
    batch_size = options["batch_size"]
    total_batches = max(math.ceil(len(matches) / batch_size), 1)
    tracker.advance(STEP_WRITE, 0, current_batch=0, total_batches=total_batches)

    outcomes = []
    for batch_number, batch in _batches(matches, batch_size):
        _checkpoint(tracker)
        results = list(
            link_service.write_matches(
                batch,
                tracker.session_id,
                auto_confirm_confidence=options["auto_confirm_confidence"],
                review_confidence=options["review_confidence"],
            )
        )
        created = Counter(r.outcome.created for r in results if r.ok)
        tracker.record_errors([r.error for r in results if not r.ok], step=step)
        tracker.increment(
            direct_links_created=created[WriteAction.LINK],
            candidates_created=created[WriteAction.CANDIDATE],
            skipped_existing=created[WriteAction.SKIPPED],
        )
        tracker.advance(
            STEP_WRITE,
            batch_number / total_batches * 100,
            current_batch=batch_number,
        )
        outcomes.extend(zip(batch, results))

    tracker.advance(STEP_WRITE, 100)
    return outcomes


def _summarize(tracker, catalog, images, matches, outcomes):
    matched_keys = {m.image.name for m in matches}
    unmatched = [image.name for image in images if image.name not in matched_keys]
    sample_size = current_app.config["SUMMARY_UNMATCHED_SAMPLE"]

    by_source = Counter()
    for match, result in outcomes:
        if result.ok and result.outcome.created != WriteAction.SKIPPED:
            by_source[match.extraction_source.value] += 1

    row = tracker.row
    needing = len(catalog.products_needing_images)
    resolved = row.direct_links_created + row.candidates_created
    return {
        "productsScanned": row.products_scanned,
        "productsWithSku": len(catalog.all_products),
        "imagesScanned": row.images_scanned,
        "imagesMatched": len(matches),
        "imagesUnmatched": len(unmatched),
        "unmatchedSample": unmatched[:sample_size],
        "candidatesPromoted": row.candidates_promoted,
        "directLinksCreated": row.direct_links_created,
        "candidatesCreated": row.candidates_created,
        "skippedExisting": row.skipped_existing,
        "matchingStats": dict(by_source),
        "coverageRate": round(resolved / needing * 100) if needing else 0,
        "errorCount": len(row.errors or []),
        "timeElapsed": row.time_elapsed,
    }
