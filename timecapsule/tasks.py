import logging
import time
from datetime import datetime, timezone
from typing import Optional

from timecapsule.celery_app import CHECK_INTERVAL_MINUTES, app
from timecapsule.config import settings

logger = logging.getLogger(__name__)


@app.task
def send_open_notification(capsule_id: int, owner: str):
    logger.info(f"Starting task: send_open_notification for capsule {capsule_id}")
    message = f"Notification: Capsule {capsule_id} can now be revealed by {owner} at {datetime.now(timezone.utc)}"
    logger.info(message)
    return message


def schedule_open_notification(capsule_id: int, owner: str, unlock_time: int, now: int) -> bool:
    """Queue the unlock reminder; returns False when the broker rejects it."""
    delay = unlock_time - now
    if delay <= 0:
        return False
    try:
        send_open_notification.apply_async((capsule_id, owner), countdown=delay)
    except Exception:
        # check_capsules picks up anything missed here
        logger.exception(f"Could not schedule notification for capsule {capsule_id}")
        return False
    return True


@app.task
def check_capsules(now: Optional[int] = None):
    if not settings.notify_on_unlock or settings.capsule_store != "sql":
        logger.info("Skipping periodic check: notifications need NOTIFY_ON_UNLOCK and the sql store")
        return []

    from timecapsule.database import SessionLocal, init_db
    from timecapsule.store import SqlCapsuleStore

    init_db()
    now = int(time.time()) if now is None else now
    window_start = now - CHECK_INTERVAL_MINUTES * 60
    logger.info("Starting periodic check of capsules")
    store = SqlCapsuleStore(SessionLocal)
    with store.transaction():
        capsules = store.unlocked_between(window_start, now)
    logger.info(f"Found {len(capsules)} capsules to check")
    for capsule in capsules:
        logger.info(f"Periodic check: Capsule {capsule.id} is open for {capsule.owner}")
        send_open_notification.delay(capsule.id, capsule.owner)
    return [capsule.id for capsule in capsules]
