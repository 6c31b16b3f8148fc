from celery import Celery
from exam_portal.core.config import settings

celery_app = Celery("exam_portal", broker=settings.REDIS_URL, backend=settings.REDIS_URL)
celery_app.conf.include = ["exam_portal.workers.tasks.maintenance"]

celery_app.conf.beat_schedule = {
    "cleanup_expired_otps": {"task": "exam_portal.workers.tasks.maintenance.cleanup_expired_otps", "schedule": 3600.0},
    "release_expired_sessions": {
        "task": "exam_portal.workers.tasks.maintenance.release_expired_sessions",
        "schedule": 600.0,
    },
}
celery_app.conf.timezone = "UTC"
