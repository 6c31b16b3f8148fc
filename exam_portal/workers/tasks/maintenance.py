from __future__ import annotations

from exam_portal.db.session import open_session
from exam_portal.services.otp_service import purge_expired_codes
from exam_portal.services.session_service import release_expired_sessions as release_sessions
from exam_portal.workers.celery_app import celery_app


@celery_app.task(name="exam_portal.workers.tasks.maintenance.cleanup_expired_otps")
def cleanup_expired_otps():
    db = open_session()
    try:
        return {"deleted": purge_expired_codes(db)}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="exam_portal.workers.tasks.maintenance.release_expired_sessions")
def release_expired_sessions():
    """Clear stale session flags. Claims never wait for this; expiry is checked at claim time."""
    db = open_session()
    try:
        return {"released": release_sessions(db)}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
