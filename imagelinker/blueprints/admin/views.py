"""Back-office endpoints for the image linker: trigger, progress, review."""
import json
import logging
import uuid
from flask import Response, current_app, request, stream_with_context
from imagelinker import extensions
from imagelinker.blueprints.admin import admin_bp
from imagelinker.extensions import db
from imagelinker.models.audit_log import AuditLog
from imagelinker.models.candidate import ImageCandidate
from imagelinker.models.scan_session import ScanSession
from imagelinker.services import link_service, pipeline_service
from imagelinker.services.link_service import CandidateStateError
from imagelinker.services.progress_service import (
    SessionStateError,
    cancel_session,
    channel_name,
    get_session,
)
from imagelinker.workers.image_linking import run_image_linking

logger = logging.getLogger(__name__)

MODES = {"consolidated_process", "check_progress"}


@admin_bp.route("/image-linker", methods=["POST"])
def image_linker():
    """Start a linking session or report on one.

    Body: ``{"mode": "consolidated_process" | "check_progress",
    "session_id": ..., "confidence_threshold": ...}``
    """
    payload = request.get_json(silent=True) or {}
    mode = payload.get("mode", "consolidated_process")

    if mode == "check_progress":
        session_id = payload.get("session_id")
        if not session_id:
            return {"error": "session_id is required for check_progress"}, 400
        return _session_response(session_id)

    if mode == "consolidated_process":
        return _start_processing(payload)

    return {"error": f"Unknown mode: {mode}", "modes": sorted(MODES)}, 400


def _start_processing(payload):
    try:
        threshold = _parse_threshold(payload.get("confidence_threshold"))
        session_id = _parse_session_id(payload.get("session_id"))
    except ValueError as e:
        return {"error": str(e)}, 400

    if get_session(session_id) is not None:
        return {"error": "Session already exists", "sessionId": session_id}, 409

    pipeline_service.create_session(session_id, review_confidence=threshold)
    db.session.add(
        AuditLog(
            actor=payload.get("requested_by") or "admin",
            action="START_IMAGE_LINKING",
            payload={"session_id": session_id, "confidence_threshold": threshold},
        )
    )
    db.session.commit()

    job = extensions.task_queue.enqueue(
        run_image_linking,
        session_id,
        review_confidence=threshold,
        job_timeout=current_app.config["IMAGE_LINK_JOB_TIMEOUT"],
    )
    logger.info("Queued image linking session %s", session_id)
    return {
        "sessionId": session_id,
        "status": "started",
        "jobId": job.id if job else None,
    }, 202


def _parse_threshold(value):
    if value is None:
        return current_app.config["IMAGE_LINK_REVIEW_CONFIDENCE"]
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError("confidence_threshold must be an integer")
    try:
        threshold = int(value)
    except ValueError:
        raise ValueError("confidence_threshold must be an integer")
    if not 0 <= threshold <= 100:
        raise ValueError("confidence_threshold must be between 0 and 100")
    return threshold


def _parse_session_id(value):
    if not value:
        return str(uuid.uuid4())
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValueError("session_id must be a UUID")


def _session_response(session_id):
    scan_session = get_session(session_id)
    if scan_session is None:
        return {"error": "Session not found", "sessionId": session_id}, 404
    return scan_session.to_dict(), 200


@admin_bp.route("/image-linker/sessions/<session_id>")
def session_progress(session_id):
    """Poll transport for session progress."""
    return _session_response(session_id)


@admin_bp.route("/image-linker/sessions/<session_id>/cancel", methods=["POST"])
def session_cancel(session_id):
    payload = request.get_json(silent=True) or {}
    actor = payload.get("requested_by") or "admin"
    try:
        scan_session = cancel_session(session_id, reason=f"Cancelled by {actor}")
    except SessionStateError as e:
        return {"error": str(e), "sessionId": session_id}, 409
    if scan_session is None:
        return {"error": "Session not found", "sessionId": session_id}, 404

    db.session.add(
        AuditLog(actor=actor, action="CANCEL_IMAGE_LINKING", payload={"session_id": session_id})
    )
    db.session.commit()
    return scan_session.to_dict(), 200


@admin_bp.route("/image-linker/sessions/<session_id>/stream")
def session_stream(session_id):
    """Push transport: Server-Sent Events relayed from the Redis channel."""
    client = extensions.redis_client
    if not client:
        return {"error": "Live updates need Redis; poll the session instead"}, 503

    # Subscribe before reading the snapshot so no update falls in between
    pubsub = client.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(channel_name(session_id))

    scan_session = get_session(session_id)
    if scan_session is None:
        pubsub.close()
        return {"error": "Session not found", "sessionId": session_id}, 404
    initial = scan_session.to_dict()

    def events():
        try:
            yield _sse(json.dumps(initial))
            if initial["status"] in ScanSession.TERMINAL_STATUSES:
                return
            for message in pubsub.listen():
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                yield _sse(data)
                if json.loads(data).get("status") in ScanSession.TERMINAL_STATUSES:
                    return
        finally:
            pubsub.close()

    return Response(stream_with_context(events()), mimetype="text/event-stream")


def _sse(data):
    return f"data: {data}\n\n"


# ---------------------------------------------------------------------------
# Candidate review
# ---------------------------------------------------------------------------

@admin_bp.route("/image-candidates")
def list_candidates():
    status = request.args.get("status", "pending")
    if status not in ImageCandidate.STATUSES:
        return {"error": f"Unknown status: {status}"}, 400
    limit = min(request.args.get("limit", 100, type=int), 500)

    candidates = (
        ImageCandidate.query.filter_by(status=status)
        .order_by(ImageCandidate.match_confidence.desc(), ImageCandidate.id)
        .limit(limit)
        .all()
    )
    return {"candidates": [c.to_dict() for c in candidates], "count": len(candidates)}, 200


@admin_bp.route("/image-candidates/<int:candidate_id>/promote", methods=["POST"])
def promote_candidate(candidate_id):
    candidate = db.session.get(ImageCandidate, candidate_id)
    if candidate is None:
        return {"error": "Candidate not found"}, 404
    reviewer = (request.get_json(silent=True) or {}).get("reviewer") or "admin"
    try:
        image = link_service.promote_candidate(candidate, actor=reviewer)
    except CandidateStateError as e:
        return {"error": str(e)}, 409
    return {
        "candidate": candidate.to_dict(),
        "imageId": image.id,
        "isPrimary": image.is_primary,
    }, 200


@admin_bp.route("/image-candidates/<int:candidate_id>/reject", methods=["POST"])
def reject_candidate(candidate_id):
    candidate = db.session.get(ImageCandidate, candidate_id)
    if candidate is None:
        return {"error": "Candidate not found"}, 404
    reviewer = (request.get_json(silent=True) or {}).get("reviewer") or "admin"
    try:
        link_service.reject_candidate(candidate, actor=reviewer)
    except CandidateStateError as e:
        return {"error": str(e)}, 409
    return {"candidate": candidate.to_dict()}, 200
