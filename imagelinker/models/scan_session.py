from datetime import datetime, timezone
from imagelinker.extensions import db


def _as_utc(value):
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ScanSession(db.Model):
    """Persisted progress of one image-linking run, polled by session id."""

    __tablename__ = "scan_sessions"

    id = db.Column(db.String(36), primary_key=True)
    status = db.Column(db.String(20), nullable=False, default="initializing", index=True)
    current_step_index = db.Column(db.Integer, nullable=False, default=0)
    total_steps = db.Column(db.Integer, nullable=False, default=0)
    step_name = db.Column(db.String(50))
    progress = db.Column(db.Float, nullable=False, default=0.0)
    current_batch = db.Column(db.Integer, nullable=False, default=0)
    total_batches = db.Column(db.Integer, nullable=False, default=0)

    candidates_promoted = db.Column(db.Integer, nullable=False, default=0)
    products_scanned = db.Column(db.Integer, nullable=False, default=0)
    images_scanned = db.Column(db.Integer, nullable=False, default=0)
    direct_links_created = db.Column(db.Integer, nullable=False, default=0)
    candidates_created = db.Column(db.Integer, nullable=False, default=0)
    skipped_existing = db.Column(db.Integer, nullable=False, default=0)

    errors = db.Column(db.JSON, default=list)
    step_errors = db.Column(db.JSON, default=dict)
    options = db.Column(db.JSON, default=dict)
    summary = db.Column(db.JSON)

    started_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at = db.Column(db.DateTime(timezone=True))

    STATUSES = {"initializing", "running", "complete", "error"}
    TERMINAL_STATUSES = {"complete", "error"}

    # column -> snapshot key
    COUNTERS = {
        "candidates_promoted": "candidatesPromoted",
        "products_scanned": "productsScanned",
        "images_scanned": "imagesScanned",
        "direct_links_created": "directLinksCreated",
        "candidates_created": "candidatesCreated",
        "skipped_existing": "skippedExisting",
    }

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def time_elapsed(self):
        """Seconds since the run started (frozen once it finished)."""
        started = _as_utc(self.started_at)
        if started is None:
            return 0.0
        finished = _as_utc(self.completed_at) or datetime.now(timezone.utc)
        return round(max((finished - started).total_seconds(), 0.0), 3)

    def to_dict(self):
        started = _as_utc(self.started_at)
        completed = _as_utc(self.completed_at)
        return {
            "sessionId": self.id,
            "status": self.status,
            "progress": round(self.progress or 0.0, 2),
            "currentStepIndex": self.current_step_index,
            "totalSteps": self.total_steps,
            "stepName": self.step_name,
            "currentBatch": self.current_batch,
            "totalBatches": self.total_batches,
            "linksCreated": self.direct_links_created,
            "candidatesCreated": self.candidates_created,
            "counters": {
                key: getattr(self, column) or 0
                for column, key in self.COUNTERS.items()
            },
            "errors": list(self.errors or []),
            "stepErrors": dict(self.step_errors or {}),
            "summary": self.summary,
            "startedAt": started.isoformat() if started else None,
            "completedAt": completed.isoformat() if completed else None,
            "timeElapsed": self.time_elapsed,
        }

    def __repr__(self):
        return f"<ScanSession {self.id} [{self.status}] {(self.progress or 0):.0f}%>"
