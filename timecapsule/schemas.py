from typing import List, Optional

from pydantic import BaseModel, Field

from timecapsule.errors import MAX_UNLOCK_TIME


class CapsuleCreate(BaseModel):
    message: str
    unlock_time: int = Field(..., le=MAX_UNLOCK_TIME)


class CapsuleCreatedResponse(BaseModel):
    id: int
    owner: str
    unlock_time: int


class RevealResponse(BaseModel):
    id: int
    message: str


class CapsuleInfoResponse(BaseModel):
    id: int
    owner: str
    unlock_time: int
    is_revealed: bool
    can_be_revealed: bool


class CanRevealResponse(BaseModel):
    id: int
    can_reveal: bool


class UserCapsulesResponse(BaseModel):
    owner: str
    capsule_ids: List[int]


class TotalResponse(BaseModel):
    total: int


class AnalyticsResponse(BaseModel):
    total_capsules: int
    pending_capsules: int
    revealable_capsules: int
    revealed_capsules: int


class EventResponse(BaseModel):
    sequence: int
    kind: str
    capsule_id: int
    owner: str
    unlock_time: Optional[int] = None
    message: Optional[str] = None
