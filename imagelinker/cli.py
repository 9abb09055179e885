"""Flask CLI commands for admin operations."""
import json
import uuid
import click
from flask import current_app


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        from imagelinker.extensions import db

        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Seed demo products (idempotent)."""
        from imagelinker.extensions import db
        from imagelinker.models.product import Product

        # Only seed if no products exist yet
        if Product.query.first():
            click.echo("Products already exist — skipping demo seed.")
            return

        demo_products = [
            ("12345", "Stoneware Coffee Mug", True),
            ("67890", "Linen Tea Towel", True),
            ("00123", "Brass Bottle Opener", True),
            ("455470", "Gift Box Small", True),
            ("455471", "Gift Box Large", True),
            ("99001", "Discontinued Candle", False),
        ]
        for sku, name, active in demo_products:
            db.session.add(Product(sku=sku, name=name, is_active=active))
        db.session.commit()
        click.echo(f"Seeded {len(demo_products)} demo products.")

    @app.cli.command("link-images")
    @click.option("--threshold", type=click.IntRange(0, 100), default=None,
                  help="Lowest confidence that still creates a review candidate.")
    @click.option("--session-id", default=None, help="Reuse a specific session UUID.")
    def link_images(threshold, session_id):
        """Run the image linking pipeline in the foreground."""
        from imagelinker.services.pipeline_service import run_pipeline
        from imagelinker.services.progress_service import get_session

        session_id = session_id or str(uuid.uuid4())
        existing = get_session(session_id)
        if existing is not None and existing.status != "initializing":
            click.echo(f"Session {session_id} is already {existing.status}.", err=True)
            raise SystemExit(1)
        click.echo(f"Session {session_id}")
        snapshot = run_pipeline(session_id, review_confidence=threshold)
        click.echo(f"Status: {snapshot['status']}")
        summary = snapshot.get("summary") or {}
        for key in (
            "productsScanned",
            "imagesScanned",
            "imagesMatched",
            "candidatesPromoted",
            "directLinksCreated",
            "candidatesCreated",
            "skippedExisting",
        ):
            if key in summary:
                click.echo(f"  {key}: {summary[key]}")
        for error in snapshot["errors"]:
            click.echo(f"  error: {error}", err=True)
        if snapshot["status"] != "complete":
            raise SystemExit(1)

    @app.cli.command("link-progress")
    @click.argument("session_id")
    def link_progress(session_id):
        """Print the stored snapshot for a session."""
        from imagelinker.services.progress_service import get_session

        scan_session = get_session(session_id)
        if scan_session is None:
            click.echo(f"Session {session_id} not found.", err=True)
            raise SystemExit(1)
        click.echo(json.dumps(scan_session.to_dict(), indent=2))

    @app.cli.command("promote-candidates")
    @click.option("--min-confidence", type=click.IntRange(0, 100), default=None,
                  help="Defaults to the auto-confirm threshold.")
    def promote_candidates(min_confidence):
        """Promote pending candidates at or above a confidence."""
        from imagelinker.services.link_service import promote_pending_candidates

        if min_confidence is None:
            min_confidence = current_app.config["IMAGE_LINK_AUTO_CONFIRM_CONFIDENCE"]
        results = promote_pending_candidates(min_confidence, actor="cli")
        promoted = sum(1 for r in results if r.ok)
        click.echo(f"Promoted {promoted} of {len(results)} candidates.")
        for result in results:
            if not result.ok:
                click.echo(f"  {result.error}", err=True)

    @app.cli.command("image-stats")
    def image_stats():
        """Show image coverage for active products."""
        from imagelinker.extensions import db
        from imagelinker.models.candidate import ImageCandidate
        from imagelinker.models.image import ProductImage
        from imagelinker.models.product import Product

        active = Product.query.filter_by(is_active=True).count()
        with_images = (
            db.session.query(db.func.count(ProductImage.product_id.distinct()))
            .join(Product, Product.id == ProductImage.product_id)
            .filter(Product.is_active.is_(True), ProductImage.image_status == "active")
            .scalar()
        )
        rows = (
            db.session.query(ImageCandidate.status, db.func.count(ImageCandidate.id))
            .group_by(ImageCandidate.status)
            .all()
        )
        click.echo(f"Active products: {active}")
        click.echo(f"  with images: {with_images}")
        click.echo(f"  without images: {active - with_images}")
        for status, count in sorted(rows):
            click.echo(f"Candidates {status}: {count}")
