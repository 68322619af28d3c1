"""
Capsule Registry
================

Owns every capsule, issues ids and guards the one-way transition from
locked to revealed.

    NonExistent --create--> Locked --reveal--> Revealed

One re-entrant lock covers the table, the owner index and the counter, so
mutations run in a single total order and reads never see a half-written
capsule. Each change and its event are written to the store in one
transaction, so either both are kept or neither is. Subscribers hear about
an event only after that transaction commits.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional

from timecapsule.context import CallContext
from timecapsule.errors import (
    MAX_MESSAGE_BYTES,
    MAX_UNLOCK_TIME,
    AlreadyRevealed,
    CapsuleError,
    CapsuleNotFound,
    EmptyMessage,
    InvalidUnlockTime,
    MessageTooLong,
    NotOwner,
    StillLocked,
)
from timecapsule.events import CapsuleCreated, CapsuleRevealed, EventRecord, LoggingSink
from timecapsule.store import CapsuleRecord, CapsuleStats, MemoryCapsuleStore

logger = logging.getLogger(__name__)

__all__ = ["CapsuleInfo", "CapsuleRegistry", "CapsuleStats"]


@dataclass(frozen=True)
class CapsuleInfo:
    id: int
    owner: str
    unlock_time: int
    is_revealed: bool
    can_be_revealed: bool


def message_size(message: str) -> int:
    return len(message.encode("utf-8"))


def _can_reveal(record: CapsuleRecord, now: int) -> bool:
    return now >= record.unlock_time and not record.is_revealed


class CapsuleRegistry:
    def __init__(self, store=None, event_sink: Optional[Callable] = None):
        self.store = store if store is not None else MemoryCapsuleStore()
        self.event_sink = event_sink if event_sink is not None else LoggingSink()
        self._lock = threading.RLock()

    @contextmanager
    def _operation(self, name: str, ctx: Optional[CallContext] = None):
        with self._lock, self.store.transaction() as store:
            try:
                yield store
            except CapsuleError as e:
                who = ctx.identity if ctx is not None else None
                logger.warning(f"{name} rejected for {who}: {e.code} ({e})")
                raise

    def _publish(self, event):
        # the change is already committed; a failing subscriber cannot undo it
        try:
            self.event_sink(event)
        except Exception:
            logger.exception(f"Subscriber failed on {event.kind} for capsule {event.capsule_id}")

    def _load(self, store, capsule_id: int) -> CapsuleRecord:
        record = store.get(capsule_id)
        if record is None:
            raise CapsuleNotFound(capsule_id)
        return record

    def create_capsule(self, ctx: CallContext, message: str, unlock_time: int) -> int:
        """
        Store a message that its creator can read once ``unlock_time`` passes.
        Returns the new capsule id.
        """
        if ctx.identity is None:
            raise ValueError("create_capsule requires a caller identity")
        with self._lock:
            event = self._create(ctx, message, unlock_time)
            self._publish(event)
        logger.info(f"Capsule {event.capsule_id} created by {ctx.identity}, unlocks at {unlock_time}")
        return event.capsule_id

    def _create(self, ctx: CallContext, message: str, unlock_time: int) -> CapsuleCreated:
        with self._operation("create_capsule", ctx) as store:
            if unlock_time <= ctx.now or unlock_time > MAX_UNLOCK_TIME:
                raise InvalidUnlockTime(unlock_time, ctx.now)
            size = message_size(message)
            if size == 0:
                raise EmptyMessage()
            if size > MAX_MESSAGE_BYTES:
                raise MessageTooLong(size)

            capsule_id = store.allocate_id()
            store.insert(CapsuleRecord(
                id=capsule_id,
                owner=ctx.identity,
                message=message,
                unlock_time=unlock_time,
            ))
            event = CapsuleCreated(capsule_id=capsule_id, owner=ctx.identity, unlock_time=unlock_time)
            store.append_event(event)
        return event

    def reveal_capsule(self, ctx: CallContext, capsule_id: int) -> str:
        """
        Mark the capsule revealed and return its message.

        Checks run in a fixed order and the first failure wins: existence,
        ownership, unlock time, then whether it was already revealed.
        """
        with self._lock:
            event = self._reveal(ctx, capsule_id)
            self._publish(event)
        logger.info(f"Capsule {capsule_id} revealed by {ctx.identity}")
        return event.message

    def _reveal(self, ctx: CallContext, capsule_id: int) -> CapsuleRevealed:
        with self._operation("reveal_capsule", ctx) as store:
            record = self._load(store, capsule_id)
            if ctx.identity != record.owner:
                raise NotOwner(capsule_id, ctx.identity)
            if ctx.now < record.unlock_time:
                raise StillLocked(capsule_id, record.unlock_time)
            if record.is_revealed or not store.mark_revealed(capsule_id):
                raise AlreadyRevealed(capsule_id)
            event = CapsuleRevealed(capsule_id=capsule_id, owner=record.owner, message=record.message)
            store.append_event(event)
        return event

    def get_capsule_info(self, ctx: CallContext, capsule_id: int) -> CapsuleInfo:
        with self._operation("get_capsule_info", ctx) as store:
            record = self._load(store, capsule_id)
        return CapsuleInfo(
            id=record.id,
            owner=record.owner,
            unlock_time=record.unlock_time,
            is_revealed=record.is_revealed,
            can_be_revealed=_can_reveal(record, ctx.now),
        )

    def can_reveal_capsule(self, ctx: CallContext, capsule_id: int) -> bool:
        with self._operation("can_reveal_capsule", ctx) as store:
            record = self._load(store, capsule_id)
        return _can_reveal(record, ctx.now)

    def get_user_capsules(self, owner: str) -> List[int]:
        with self._operation("get_user_capsules") as store:
            return store.owned_by(owner)

    def get_total_capsules(self) -> int:
        with self._operation("get_total_capsules") as store:
            return store.total()

    def get_analytics(self, ctx: CallContext, owner: str) -> CapsuleStats:
        with self._operation("get_analytics", ctx) as store:
            return store.stats(owner, ctx.now)

    def get_events(self, after: int = 0, kind: Optional[str] = None,
                   capsule_id: Optional[int] = None, owner: Optional[str] = None) -> List[EventRecord]:
        """Committed events with a sequence number above ``after``, oldest first."""
        with self._operation("get_events") as store:
            return store.events(after=after, kind=kind, capsule_id=capsule_id, owner=owner)
