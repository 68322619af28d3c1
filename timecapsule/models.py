from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from timecapsule.database import Base


class Capsule(Base):
    __tablename__ = "capsules"
    id = Column(Integer, primary_key=True, autoincrement=False)
    owner = Column(String(255), nullable=False, index=True)
    message = Column(Text, nullable=False)
    unlock_time = Column(BigInteger, nullable=False, index=True)
    is_revealed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class CapsuleCounter(Base):
    __tablename__ = "capsule_counter"
    id = Column(Integer, primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)


class CapsuleEvent(Base):
    __tablename__ = "capsule_events"
    sequence = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False, index=True)
    capsule_id = Column(Integer, nullable=False, index=True)
    owner = Column(String(255), nullable=False, index=True)
    unlock_time = Column(BigInteger)
    message = Column(Text)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
