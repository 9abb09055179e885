"""Tests for the admin image-linker endpoints."""
import json
import uuid
from unittest.mock import MagicMock
from imagelinker import extensions
from imagelinker.models.audit_log import AuditLog
from imagelinker.models.candidate import ImageCandidate
from imagelinker.models.image import ProductImage
from imagelinker.services.pipeline_service import create_session


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["db"] == "ok"
    assert resp.get_json()["redis"] == "not configured"


def test_consolidated_process_runs_inline(client, make_product, bucket):
    make_product("12345")
    make_product("67890")
    bucket(["12345.jpg", "67890_front.png", "99999.jpg"])

    resp = client.post("/admin/image-linker", json={"mode": "consolidated_process"})

    assert resp.status_code == 202
    body = resp.get_json()
    assert body["status"] == "started"
    assert body["jobId"]
    session_id = body["sessionId"]

    resp = client.post(
        "/admin/image-linker", json={"mode": "check_progress", "session_id": session_id}
    )
    assert resp.status_code == 200
    snapshot = resp.get_json()
    assert snapshot["status"] == "complete"
    assert snapshot["linksCreated"] == 1
    assert snapshot["candidatesCreated"] == 1
    assert ProductImage.query.count() == 1
    assert AuditLog.query.filter_by(action="START_IMAGE_LINKING").count() == 1


def test_mode_defaults_to_consolidated_process(client, bucket):
    bucket([])
    resp = client.post("/admin/image-linker", json={})
    assert resp.status_code == 202


def test_confidence_threshold_is_passed_through(client, make_product, bucket):
    make_product("67890")
    bucket(["67890_front.png"])

    resp = client.post(
        "/admin/image-linker",
        json={"mode": "consolidated_process", "confidence_threshold": 90},
    )

    assert resp.status_code == 202
    assert ImageCandidate.query.count() == 0
    snapshot = client.get(f"/admin/image-linker/sessions/{resp.get_json()['sessionId']}").get_json()
    assert snapshot["summary"]["skippedExisting"] == 1


def test_invalid_threshold(client):
    for bad in (-1, 101, "high", True, 70.5):
        resp = client.post("/admin/image-linker", json={"confidence_threshold": bad})
        assert resp.status_code == 400, bad


def test_invalid_session_id(client):
    resp = client.post("/admin/image-linker", json={"session_id": "not-a-uuid"})
    assert resp.status_code == 400


def test_existing_session_conflicts(client):
    session_id = str(uuid.uuid4())
    create_session(session_id)
    resp = client.post("/admin/image-linker", json={"session_id": session_id})
    assert resp.status_code == 409


def test_unknown_mode(client):
    resp = client.post("/admin/image-linker", json={"mode": "complete_refresh"})
    assert resp.status_code == 400
    assert "check_progress" in resp.get_json()["modes"]


def test_check_progress_requires_session_id(client):
    resp = client.post("/admin/image-linker", json={"mode": "check_progress"})
    assert resp.status_code == 400


def test_check_progress_unknown_session(client):
    session_id = str(uuid.uuid4())
    resp = client.post(
        "/admin/image-linker", json={"mode": "check_progress", "session_id": session_id}
    )
    assert resp.status_code == 404
    assert client.get(f"/admin/image-linker/sessions/{session_id}").status_code == 404


def test_cancel(client):
    session_id = str(uuid.uuid4())
    create_session(session_id)

    resp = client.post(
        f"/admin/image-linker/sessions/{session_id}/cancel", json={"requested_by": "ops"}
    )
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "error"
    assert resp.get_json()["errors"] == ["Cancelled by ops"]
    assert AuditLog.query.filter_by(action="CANCEL_IMAGE_LINKING", actor="ops").count() == 1

    resp = client.post(f"/admin/image-linker/sessions/{session_id}/cancel")
    assert resp.status_code == 409
    resp = client.post(f"/admin/image-linker/sessions/{uuid.uuid4()}/cancel")
    assert resp.status_code == 404


def test_stream_needs_redis(client):
    session_id = str(uuid.uuid4())
    create_session(session_id)
    resp = client.get(f"/admin/image-linker/sessions/{session_id}/stream")
    assert resp.status_code == 503


def test_stream_of_finished_session_sends_one_event(client, monkeypatch):
    fake_redis = MagicMock()
    monkeypatch.setattr(extensions, "redis_client", fake_redis)
    session_id = str(uuid.uuid4())
    tracker = create_session(session_id)
    tracker.start()
    tracker.complete({"imagesScanned": 0})

    resp = client.get(f"/admin/image-linker/sessions/{session_id}/stream")

    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    body = resp.get_data(as_text=True)
    assert body.startswith("data: ")
    assert body.endswith("\n\n")
    assert json.loads(body[len("data: "):])["status"] == "complete"
    pubsub = fake_redis.pubsub.return_value
    pubsub.subscribe.assert_called_once_with(f"image-linking:{session_id}")
    pubsub.close.assert_called_once()


def test_stream_relays_updates_until_terminal(client, monkeypatch):
    fake_redis = MagicMock()
    monkeypatch.setattr(extensions, "redis_client", fake_redis)
    session_id = str(uuid.uuid4())
    create_session(session_id)
    fake_redis.pubsub.return_value.listen.return_value = iter([
        {"data": json.dumps({"sessionId": session_id, "status": "running", "progress": 40}).encode()},
        {"data": json.dumps({"sessionId": session_id, "status": "complete", "progress": 100}).encode()},
        {"data": b"never sent"},
    ])

    body = client.get(f"/admin/image-linker/sessions/{session_id}/stream").get_data(as_text=True)

    events = [json.loads(chunk[len("data: "):]) for chunk in body.strip().split("\n\n")]
    assert [e["status"] for e in events] == ["initializing", "running", "complete"]


def _pending_candidate(make_product, db, confidence=80):
    product = make_product("67890")
    candidate = ImageCandidate(
        product_id=product.id,
        storage_key="67890_front.png",
        image_url="https://cdn.example.test/product-images/67890_front.png",
        match_confidence=confidence,
        status="pending",
    )
    db.session.add(candidate)
    db.session.commit()
    return candidate


def test_list_candidates(client, make_product, db):
    candidate = _pending_candidate(make_product, db)

    resp = client.get("/admin/image-candidates")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["count"] == 1
    assert body["candidates"][0]["id"] == candidate.id
    assert body["candidates"][0]["matchConfidence"] == 80

    assert client.get("/admin/image-candidates?status=promoted").get_json()["count"] == 0
    assert client.get("/admin/image-candidates?status=bogus").status_code == 400


def test_promote_candidate_endpoint(client, make_product, db):
    candidate = _pending_candidate(make_product, db)

    resp = client.post(
        f"/admin/image-candidates/{candidate.id}/promote", json={"reviewer": "sam"}
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["isPrimary"] is True
    assert body["candidate"]["status"] == "promoted"
    assert body["candidate"]["reviewedBy"] == "sam"
    assert db.session.get(ProductImage, body["imageId"]).auto_matched is False

    resp = client.post(f"/admin/image-candidates/{candidate.id}/promote")
    assert resp.status_code == 409


def test_reject_candidate_endpoint(client, make_product, db):
    candidate = _pending_candidate(make_product, db)

    resp = client.post(f"/admin/image-candidates/{candidate.id}/reject", json={"reviewer": "sam"})
    assert resp.status_code == 200
    assert resp.get_json()["candidate"]["status"] == "rejected"
    assert client.post("/admin/image-candidates/9999/reject").status_code == 404
