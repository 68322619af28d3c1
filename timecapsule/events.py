"""
Notifications written by the registry on every state change.

Events are appended to the store's event log in the same transaction as the
change itself. Subscribers (any callable taking one event) are notified
after that transaction commits.
"""
import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapsuleCreated:
    capsule_id: int
    owner: str
    unlock_time: int
    kind = "CapsuleCreated"

    def to_dict(self) -> dict:
        return {"kind": self.kind, **asdict(self)}


@dataclass(frozen=True)
class CapsuleRevealed:
    capsule_id: int
    owner: str
    message: str
    kind = "CapsuleRevealed"

    def to_dict(self) -> dict:
        return {"kind": self.kind, **asdict(self)}


EVENT_TYPES = {cls.kind: cls for cls in (CapsuleCreated, CapsuleRevealed)}


@dataclass(frozen=True)
class EventRecord:
    sequence: int
    event: object


class LoggingSink:
    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def __call__(self, event):
        # message bodies stay out of the logs
        self.log.info(f"{event.kind}: capsule {event.capsule_id} owner {event.owner}")
