"""Task bodies, kept free of Celery so they can be called directly."""
import logging
from typing import Callable

from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.notification_service import send_notification_to_admins, send_notification_to_user

logger = logging.getLogger(__name__)


def _in_session(fn: Callable[..., dict], *args) -> dict:
    db: Session = SessionLocal()
    try:
        return fn(db, *args)
    except ProgrammingError:
        # tables not migrated yet; a push is not worth crashing the worker over
        db.rollback()
        logger.warning("%s skipped: push tables missing", fn.__name__)
        return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def send_push_to_user(user_id: str, title: str, body: str, data: dict | None = None) -> dict:
    return _in_session(send_notification_to_user, user_id, title, body, data)


def send_push_to_admins(title: str, body: str, data: dict | None = None) -> dict:
    return _in_session(send_notification_to_admins, title, body, data)
