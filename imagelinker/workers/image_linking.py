"""RQ worker job: link storage images to catalog products."""
import logging
from flask import current_app, has_app_context
from redis.exceptions import LockError
from imagelinker import create_app, extensions
from imagelinker.services import pipeline_service
from imagelinker.services.progress_service import get_session

logger = logging.getLogger(__name__)

_worker_app = None


def _get_app():
    """Return an app instance for worker execution.

    Reuse the current app when already inside an app context (tests/CLI),
    otherwise lazily create the worker app once.
    """
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        _worker_app = create_app()
    return _worker_app


def run_image_linking(session_id, review_confidence=None, auto_confirm_confidence=None):
    """Run the linking pipeline for a session created by the trigger endpoint.

    Idempotency: only an ``initializing`` session is picked up, so a
    re-delivered job never runs a session twice.
    Distributed lock: prevents two workers racing on the same session.
    """
    app = _get_app()
    with app.app_context():
        scan_session = get_session(session_id)
        if scan_session is not None and scan_session.status != "initializing":
            logger.info(
                "Session %s already %s, skipping", session_id, scan_session.status
            )
            return scan_session.to_dict()

        lock = None
        if extensions.redis_client:
            lock = extensions.redis_client.lock(
                f"image_link:{session_id}",
                timeout=app.config["IMAGE_LINK_JOB_TIMEOUT"],
            )
            if not lock.acquire(blocking=False):
                logger.info("Lock held for session %s, skipping", session_id)
                return None

        try:
            return pipeline_service.run_pipeline(
                session_id,
                review_confidence=review_confidence,
                auto_confirm_confidence=auto_confirm_confidence,
            )
        finally:
            if lock is not None:
                try:
                    lock.release()
                except LockError:
                    logger.warning("Lock for session %s expired before release", session_id)
