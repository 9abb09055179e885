"""Tests for the Flask CLI commands."""
import json
import uuid
from imagelinker.models.candidate import ImageCandidate
from imagelinker.models.product import Product
from imagelinker.services.pipeline_service import create_session


def test_seed_demo_is_idempotent(app, db):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-demo"])
    assert "Seeded" in result.output
    count = Product.query.count()

    result = runner.invoke(args=["seed-demo"])
    assert "skipping" in result.output
    assert Product.query.count() == count


def test_link_images(app, db, make_product, bucket):
    make_product("12345")
    bucket(["12345.jpg"])
    session_id = str(uuid.uuid4())

    result = app.test_cli_runner().invoke(args=["link-images", "--session-id", session_id])

    assert result.exit_code == 0, result.output
    assert f"Session {session_id}" in result.output
    assert "Status: complete" in result.output
    assert "directLinksCreated: 1" in result.output


def test_link_images_rejects_bad_threshold(app, db):
    result = app.test_cli_runner().invoke(args=["link-images", "--threshold", "150"])
    assert result.exit_code != 0


def test_link_progress(app, db):
    session_id = str(uuid.uuid4())
    create_session(session_id)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["link-progress", session_id])
    assert result.exit_code == 0
    assert json.loads(result.output)["status"] == "initializing"

    result = runner.invoke(args=["link-progress", str(uuid.uuid4())])
    assert result.exit_code == 1


def test_promote_candidates(app, db, make_product):
    product = make_product("67890")
    for confidence in (80, 72):
        db.session.add(
            ImageCandidate(
                product_id=product.id,
                storage_key=f"67890_{confidence}.jpg",
                image_url=f"https://cdn.example.test/67890_{confidence}.jpg",
                match_confidence=confidence,
                status="pending",
            )
        )
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["promote-candidates", "--min-confidence", "75"])

    assert "Promoted 1 of 1 candidates." in result.output
    assert ImageCandidate.query.filter_by(status="pending").count() == 1


def test_image_stats(app, db, make_product):
    make_product("12345")
    make_product("99001", is_active=False)
    result = app.test_cli_runner().invoke(args=["image-stats"])
    assert "Active products: 1" in result.output
    assert "without images: 1" in result.output


def test_link_images_refuses_finished_session(app, db):
    session_id = str(uuid.uuid4())
    tracker = create_session(session_id)
    tracker.start()
    tracker.complete({})

    result = app.test_cli_runner().invoke(args=["link-images", "--session-id", session_id])

    assert result.exit_code == 1
    assert "already complete" in result.output
