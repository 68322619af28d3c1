"""
Persistent state behind the registry: capsule table, owner index, counter.

Stores do no validation. The registry calls them only from inside
``transaction()`` while holding its lock. A ``transaction()`` opened inside
another one joins it, and only the outermost block commits or rolls back.
"""
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields, replace
from typing import Dict, List, Optional

from sqlalchemy import func, select, update

from timecapsule.events import EVENT_TYPES, EventRecord
from timecapsule.models import Capsule, CapsuleCounter, CapsuleEvent


def _matches(event, kind, capsule_id, owner) -> bool:
    return ((kind is None or event.kind == kind)
            and (capsule_id is None or event.capsule_id == capsule_id)
            and (owner is None or event.owner == owner))


@dataclass
class CapsuleRecord:
    id: int
    owner: str
    message: str
    unlock_time: int
    is_revealed: bool = False


@dataclass(frozen=True)
class CapsuleStats:
    total: int
    locked: int
    revealable: int
    revealed: int


class MemoryCapsuleStore:
    def __init__(self):
        self._capsules: Dict[int, CapsuleRecord] = {}
        self._by_owner: Dict[str, List[int]] = {}
        self._counter = 0
        self._events: List[EventRecord] = []
        self._undo = None

    @contextmanager
    def transaction(self):
        if self._undo is not None:
            yield self
            return
        self._undo = []
        try:
            yield self
        except Exception:
            for action in reversed(self._undo):
                action()
            raise
        finally:
            self._undo = None

    def _journal(self, action):
        if self._undo is not None:
            self._undo.append(action)

    def allocate_id(self) -> int:
        capsule_id = self._counter
        self._counter += 1
        self._journal(lambda: setattr(self, "_counter", capsule_id))
        return capsule_id

    def insert(self, record: CapsuleRecord):
        self._capsules[record.id] = replace(record)
        owned = self._by_owner.setdefault(record.owner, [])
        owned.append(record.id)

        def undo():
            del self._capsules[record.id]
            owned.pop()
            if not owned:
                del self._by_owner[record.owner]
        self._journal(undo)

    def get(self, capsule_id: int) -> Optional[CapsuleRecord]:
        record = self._capsules.get(capsule_id)
        return replace(record) if record is not None else None

    def mark_revealed(self, capsule_id: int) -> bool:
        record = self._capsules[capsule_id]
        if record.is_revealed:
            return False
        record.is_revealed = True
        self._journal(lambda: setattr(record, "is_revealed", False))
        return True

    def owned_by(self, owner: str) -> List[int]:
        return list(self._by_owner.get(owner, ()))

    def total(self) -> int:
        return self._counter

    def append_event(self, event) -> int:
        sequence = len(self._events) + 1
        self._events.append(EventRecord(sequence=sequence, event=event))
        self._journal(self._events.pop)
        return sequence

    def events(self, after: int = 0, kind: Optional[str] = None,
               capsule_id: Optional[int] = None, owner: Optional[str] = None) -> List[EventRecord]:
        return [
            record for record in self._events[max(after, 0):]
            if _matches(record.event, kind, capsule_id, owner)
        ]

    def stats(self, owner: str, now: int) -> CapsuleStats:
        records = [self._capsules[i] for i in self._by_owner.get(owner, ())]
        revealed = sum(1 for r in records if r.is_revealed)
        locked = sum(1 for r in records if r.unlock_time > now)
        return CapsuleStats(
            total=len(records),
            locked=locked,
            revealable=len(records) - revealed - locked,
            revealed=revealed,
        )


class SqlCapsuleStore:
    """Capsule state kept in a SQL database through SQLAlchemy."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._session = None

    @contextmanager
    def transaction(self):
        if self._session is not None:
            yield self
            return
        session = self.session_factory()
        self._session = session
        try:
            yield self
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._session = None
            session.close()

    @property
    def session(self):
        if self._session is None:
            raise RuntimeError("SqlCapsuleStore used outside of a transaction")
        return self._session

    @staticmethod
    def _record(row: Capsule) -> CapsuleRecord:
        return CapsuleRecord(
            id=row.id,
            owner=row.owner,
            message=row.message,
            unlock_time=row.unlock_time,
            is_revealed=row.is_revealed,
        )

    def allocate_id(self) -> int:
        counter = self.session.get(CapsuleCounter, 1, with_for_update=True)
        if counter is None:
            counter = CapsuleCounter(id=1, value=0)
            self.session.add(counter)
        capsule_id = counter.value
        counter.value = capsule_id + 1
        self.session.flush()
        return capsule_id

    def insert(self, record: CapsuleRecord):
        self.session.add(Capsule(
            id=record.id,
            owner=record.owner,
            message=record.message,
            unlock_time=record.unlock_time,
            is_revealed=record.is_revealed,
        ))
        self.session.flush()

    def get(self, capsule_id: int) -> Optional[CapsuleRecord]:
        row = self.session.get(Capsule, capsule_id)
        return self._record(row) if row is not None else None

    def mark_revealed(self, capsule_id: int) -> bool:
        result = self.session.execute(
            update(Capsule)
            .where(Capsule.id == capsule_id, Capsule.is_revealed.is_(False))
            .values(is_revealed=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def owned_by(self, owner: str) -> List[int]:
        query = select(Capsule.id).where(Capsule.owner == owner).order_by(Capsule.id)
        return list(self.session.execute(query).scalars().all())

    def total(self) -> int:
        counter = self.session.get(CapsuleCounter, 1)
        return counter.value if counter is not None else 0

    def append_event(self, event) -> int:
        row = CapsuleEvent(kind=event.kind, **asdict(event))
        self.session.add(row)
        self.session.flush()
        return row.sequence

    def events(self, after: int = 0, kind: Optional[str] = None,
               capsule_id: Optional[int] = None, owner: Optional[str] = None) -> List[EventRecord]:
        query = select(CapsuleEvent).where(CapsuleEvent.sequence > after)
        if kind is not None:
            query = query.where(CapsuleEvent.kind == kind)
        if capsule_id is not None:
            query = query.where(CapsuleEvent.capsule_id == capsule_id)
        if owner is not None:
            query = query.where(CapsuleEvent.owner == owner)
        rows = self.session.execute(query.order_by(CapsuleEvent.sequence)).scalars().all()
        records = []
        for row in rows:
            cls = EVENT_TYPES[row.kind]
            event = cls(**{field.name: getattr(row, field.name) for field in fields(cls)})
            records.append(EventRecord(sequence=row.sequence, event=event))
        return records

    def stats(self, owner: str, now: int) -> CapsuleStats:
        result = self.session.query(
            func.count(Capsule.id).label("total"),
            func.count(Capsule.id).filter(Capsule.unlock_time > now).label("locked"),
            func.count(Capsule.id).filter(Capsule.is_revealed.is_(True)).label("revealed"),
        ).filter(Capsule.owner == owner).first()
        return CapsuleStats(
            total=result.total,
            locked=result.locked,
            revealable=result.total - result.locked - result.revealed,
            revealed=result.revealed,
        )

    def unlocked_between(self, start: int, end: int) -> List[CapsuleRecord]:
        """Unrevealed capsules whose unlock time falls in (start, end]."""
        query = (
            select(Capsule)
            .where(Capsule.unlock_time > start, Capsule.unlock_time <= end,
                   Capsule.is_revealed.is_(False))
            .order_by(Capsule.id)
        )
        return [self._record(row) for row in self.session.execute(query).scalars().all()]
