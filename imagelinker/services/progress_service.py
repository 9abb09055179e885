"""Persisted, pollable progress for image-linking sessions."""
import json
import logging
from datetime import datetime, timezone
import redis as _redis
from imagelinker import extensions
from imagelinker.extensions import db
from imagelinker.models.scan_session import ScanSession

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "image-linking:"


class SessionStateError(Exception):
    """Illegal transition for a scan session."""


def channel_name(session_id):
    return f"{CHANNEL_PREFIX}{session_id}"


def get_session(session_id):
    return db.session.get(ScanSession, session_id)


class ProgressTracker:
    """The only writer of a ScanSession row.

    Lifecycle: initializing -> running -> complete | error. Every mutation is
    committed straight away so another process can poll the row, and the
    fresh snapshot is published on Redis for push subscribers.
    """

    def __init__(self, scan_session, steps):
        self.session_id = scan_session.id
        self.steps = tuple(steps)
        self._row = scan_session

    @classmethod
    def create(cls, session_id, steps, options=None):
        scan_session = ScanSession(
            id=session_id,
            status="initializing",
            total_steps=len(steps),
            current_step_index=0,
            step_name=steps[0] if steps else None,
            progress=0.0,
            errors=[],
            step_errors={},
            options=options or {},
        )
        db.session.add(scan_session)
        tracker = cls(scan_session, steps)
        tracker._persist()
        return tracker

    @classmethod
    def load(cls, session_id, steps):
        scan_session = get_session(session_id)
        if scan_session is None:
            return None
        return cls(scan_session, steps)

    @property
    def row(self):
        return self._row

    # -- transitions -------------------------------------------------------

    def start(self):
        if self._row.status != "initializing":
            raise SessionStateError(
                f"Session {self.session_id} cannot start from {self._row.status}"
            )
        self._row.status = "running"
        self._persist()

    def complete(self, summary=None):
        """Move ``running -> complete``.

        Conditional on the stored status, so a cancel committed by another
        process after the last checkpoint is never overwritten.
        """
        values = {
            "status": "complete",
            "progress": 100.0,
            "current_step_index": max(self._row.current_step_index, len(self.steps) - 1),
            "step_name": self.steps[-1] if self.steps else None,
            "summary": summary,
            "completed_at": datetime.now(timezone.utc),
        }
        updated = (
            ScanSession.query.filter_by(id=self.session_id, status="running")
            .update(values, synchronize_session=False)
        )
        if not updated:
            db.session.rollback()
            raise SessionStateError(
                f"Session {self.session_id} cannot complete from {self._row.status}"
            )
        db.session.commit()
        publish_snapshot(self._row.to_dict())

    def fail(self, message):
        if self._row.is_terminal:
            logger.info(
                "Session %s already %s; not recording: %s",
                self.session_id,
                self._row.status,
                message,
            )
            return
        self._row.status = "error"
        self._row.errors = list(self._row.errors or []) + [message]
        self._row.completed_at = datetime.now(timezone.utc)
        self._persist()

    # -- progress ----------------------------------------------------------

    def advance(self, step_index, percent_within_step=0.0, current_batch=None, total_batches=None):
        """Report progress inside a step.

        Overall progress is ``(step_index + percent/100) / total_steps``; it
        and the step index only ever move forward.
        """
        if not 0 <= step_index < len(self.steps):
            raise ValueError(f"Unknown step index {step_index}")
        percent = min(max(float(percent_within_step), 0.0), 100.0)
        overall = (step_index + percent / 100.0) / len(self.steps) * 100.0

        row = self._row
        if step_index >= row.current_step_index:
            row.current_step_index = step_index
            row.step_name = self.steps[step_index]
        if overall > (row.progress or 0.0):
            row.progress = round(overall, 2)
        if total_batches is not None:
            row.total_batches = total_batches
        if current_batch is not None:
            row.current_batch = current_batch
        self._persist()

    def increment(self, **counters):
        row = self._row
        for name, amount in counters.items():
            if name not in ScanSession.COUNTERS:
                raise ValueError(f"Unknown counter {name}")
            if amount < 0:
                raise ValueError(f"Counter {name} cannot decrease")
            setattr(row, name, (getattr(row, name) or 0) + amount)
        self._persist()

    def record_error(self, message, step=None):
        row = self._row
        row.errors = list(row.errors or []) + [message]
        if step:
            buckets = dict(row.step_errors or {})
            buckets[step] = list(buckets.get(step, [])) + [message]
            row.step_errors = buckets
        self._persist()

    def record_errors(self, messages, step=None):
        """Append several errors with a single commit."""
        if not messages:
            return
        row = self._row
        row.errors = list(row.errors or []) + list(messages)
        if step:
            buckets = dict(row.step_errors or {})
            buckets[step] = list(buckets.get(step, [])) + list(messages)
            row.step_errors = buckets
        self._persist()

    def is_cancelled(self):
        """True once someone else moved the session to ``error``."""
        db.session.refresh(self._row)
        return self._row.status == "error"

    def snapshot(self):
        return self._row.to_dict()

    # -- persistence -------------------------------------------------------

    def _persist(self):
        db.session.commit()
        publish_snapshot(self._row.to_dict())


def publish_snapshot(snapshot):
    """Push a snapshot to Redis subscribers. Best effort: polling still works."""
    client = extensions.redis_client
    if not client:
        return
    try:
        client.publish(channel_name(snapshot["sessionId"]), json.dumps(snapshot))
    except _redis.RedisError as e:
        logger.warning("Could not publish progress for %s: %s", snapshot["sessionId"], e)


def cancel_session(session_id, reason="Cancelled by operator"):
    """Mark a running session as failed from outside the pipeline.

    The pipeline notices between steps and batches and stops.
    Returns the session, or None if it does not exist.
    """
    scan_session = get_session(session_id)
    if scan_session is None:
        return None
    if scan_session.is_terminal:
        raise SessionStateError(f"Session {session_id} is already {scan_session.status}")
    scan_session.status = "error"
    scan_session.errors = list(scan_session.errors or []) + [reason]
    scan_session.completed_at = datetime.now(timezone.utc)
    db.session.commit()
    publish_snapshot(scan_session.to_dict())
    return scan_session
