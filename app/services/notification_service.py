import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.profile import Profile
from app.models.push_token import PushToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool
    push_url: str
    access_token: str = ""
    timeout: int = 10
    sound: str = "default"

    @classmethod
    def from_settings(cls, s=settings) -> "NotificationConfig":
        return cls(
            enabled=s.NOTIFICATIONS_ENABLED,
            push_url=s.EXPO_PUSH_URL,
            access_token=s.EXPO_ACCESS_TOKEN,
            timeout=s.PUSH_TIMEOUT_SECONDS,
        )


class PushNotifier:
    """Sends push messages through the Expo push gateway.

    The on/off switch lives in the ``NotificationConfig`` handed to the
    notifier; a disabled notifier drops every message.
    """

    def __init__(self, config: NotificationConfig):
        self.config = config

    def build_payload(self, token: str, title: str, body: str, data: dict | None = None) -> dict:
        return {
            "to": token,
            "sound": self.config.sound,
            "title": title,
            "body": body,
            "data": data or {},
        }

    def send(self, token: str, title: str, body: str, data: dict | None = None) -> bool:
        if not self.config.enabled:
            return False
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        r = requests.post(
            self.config.push_url,
            json=self.build_payload(token, title, body, data),
            headers=headers,
            timeout=self.config.timeout,
        )
        if r.status_code >= 400:
            raise RuntimeError(f"Push gateway error {r.status_code}: {r.text}")
        return True

    def send_many(self, tokens: list[str], title: str, body: str, data: dict | None = None) -> dict:
        sent, failed = 0, 0
        for token in tokens:
            try:
                if self.send(token, title, body, data):
                    sent += 1
            except (requests.RequestException, RuntimeError):
                logger.exception("push to %s... failed", token[:18])
                failed += 1
        return {"tokens": len(tokens), "sent": sent, "failed": failed}


def get_notifier() -> PushNotifier:
    return PushNotifier(NotificationConfig.from_settings())


def register_push_token(db: Session, user_id: str, token: str, device_id: str = "unknown-device") -> PushToken:
    """Upsert on (user_id, device_id)."""
    device_id = device_id or "unknown-device"
    row = db.query(PushToken).filter(PushToken.user_id == user_id, PushToken.device_id == device_id).first()
    if row:
        row.token = token
        row.updated_at = datetime.now(timezone.utc)
    else:
        row = PushToken(id=str(uuid.uuid4()), user_id=user_id, device_id=device_id, token=token)
        db.add(row)
    db.commit()
    return row


def tokens_for_user(db: Session, user_id: str) -> list[str]:
    return [t for (t,) in db.query(PushToken.token).filter(PushToken.user_id == user_id).all()]


def send_notification_to_user(db: Session, user_id: str, title: str, body: str, data: dict | None = None,
                              notifier: PushNotifier | None = None) -> dict:
    tokens = tokens_for_user(db, user_id)
    if not tokens:
        logger.info("No push tokens found for user %s", user_id)
        return {"tokens": 0, "sent": 0, "failed": 0}
    return (notifier or get_notifier()).send_many(tokens, title, body, data)


def send_notification_to_admins(db: Session, title: str, body: str, data: dict | None = None,
                                notifier: PushNotifier | None = None) -> dict:
    tokens = [
        t for (t,) in db.query(PushToken.token)
        .join(Profile, Profile.id == PushToken.user_id)
        .filter(Profile.role == "admin", Profile.status != "deactivated")
        .all()
    ]
    if not tokens:
        logger.info("No admin push tokens registered")
        return {"tokens": 0, "sent": 0, "failed": 0}
    return (notifier or get_notifier()).send_many(tokens, title, body, data)


def dispatch_user_notification(user_id: str | None, title: str, body: str, data: dict | None = None) -> None:
    """Queue a push to one user; never raises into the caller."""
    if not user_id:
        return
    from app.tasks.jobs import send_push_to_user
    try:
        send_push_to_user.delay(user_id, title, body, data or {})
    except Exception:
        logger.exception("could not queue push for user %s", user_id)


def dispatch_admin_notification(title: str, body: str, data: dict | None = None) -> None:
    from app.tasks.jobs import send_push_to_admins
    try:
        send_push_to_admins.delay(title, body, data or {})
    except Exception:
        logger.exception("could not queue admin push")
