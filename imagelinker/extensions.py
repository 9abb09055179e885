import logging
import uuid
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis
from rq import Queue

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Initialized lazily in create_app
redis_client: _redis.Redis = None  # type: ignore
task_queue: Queue = None  # type: ignore

# Job options RQ consumes itself rather than passing to the job function
_RQ_OPTIONS = ("job_timeout", "job_id", "result_ttl", "failure_ttl", "description")


class InlineJob:
    """Finished job handle mirroring the parts of ``rq.job.Job`` we read."""

    def __init__(self, job_id, status, result=None):
        self.id = job_id
        self._status = status
        self.result = result

    def get_status(self):
        return self._status


class InlineQueue:
    """Runs jobs in-process when Redis is not available (dev mode, tests)."""

    name = "inline"

    def enqueue(self, func, *args, **kwargs):
        job_id = kwargs.pop("job_id", None) or str(uuid.uuid4())
        for option in _RQ_OPTIONS:
            kwargs.pop(option, None)
        logger.info("Redis not available — running %s inline", func.__name__)
        try:
            result = func(*args, **kwargs)
        except Exception:
            logger.exception("Inline job %s failed", job_id)
            return InlineJob(job_id, "failed")
        return InlineJob(job_id, "finished", result)


def init_redis(app):
    global redis_client, task_queue
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set — jobs run inline (dev mode)")
        redis_client = None
        task_queue = InlineQueue()
        return

    try:
        client = _redis.from_url(redis_url, decode_responses=False)
        client.ping()
    except Exception as e:
        logger.warning("Redis connection failed (%s) — jobs run inline", e)
        redis_client = None
        task_queue = InlineQueue()
        return

    redis_client = client
    task_queue = Queue("image-linking", connection=redis_client)
