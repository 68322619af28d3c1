import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from timecapsule.auth import get_current_user
from timecapsule.config import Settings, settings as default_settings
from timecapsule.context import CallContext, SystemClock
from timecapsule.errors import (
    AlreadyRevealed,
    CapsuleError,
    CapsuleNotFound,
    EmptyMessage,
    InvalidUnlockTime,
    MessageTooLong,
    NotOwner,
    StillLocked,
)
from timecapsule.events import LoggingSink
from timecapsule.registry import CapsuleRegistry
from timecapsule.schemas import (
    AnalyticsResponse,
    CanRevealResponse,
    CapsuleCreate,
    CapsuleCreatedResponse,
    CapsuleInfoResponse,
    EventResponse,
    RevealResponse,
    TotalResponse,
    UserCapsulesResponse,
)
from timecapsule.store import MemoryCapsuleStore, SqlCapsuleStore
from timecapsule.tasks import schedule_open_notification

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidUnlockTime: status.HTTP_400_BAD_REQUEST,
    EmptyMessage: status.HTTP_400_BAD_REQUEST,
    MessageTooLong: status.HTTP_400_BAD_REQUEST,
    NotOwner: status.HTTP_403_FORBIDDEN,
    StillLocked: status.HTTP_403_FORBIDDEN,
    CapsuleNotFound: status.HTTP_404_NOT_FOUND,
    AlreadyRevealed: status.HTTP_409_CONFLICT,
}


def build_registry(settings: Settings) -> CapsuleRegistry:
    if settings.capsule_store == "sql":
        from timecapsule.database import SessionLocal, init_db
        init_db()
        store = SqlCapsuleStore(SessionLocal)
    elif settings.capsule_store == "memory":
        store = MemoryCapsuleStore()
    else:
        raise ValueError(f"Unknown CAPSULE_STORE: {settings.capsule_store}")
    logger.info(f"Using {settings.capsule_store} capsule store")
    return CapsuleRegistry(store=store, event_sink=LoggingSink())


def create_app(registry: Optional[CapsuleRegistry] = None, clock=None,
               settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="TimeCapsule API",
        description="API for creating and revealing time-locked capsules",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.clock = clock or SystemClock()
    app.state.registry = registry or build_registry(settings)

    @app.exception_handler(CapsuleError)
    async def capsule_error_handler(request: Request, exc: CapsuleError):
        return JSONResponse(
            status_code=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
            content={"error": exc.code, "detail": str(exc)},
        )

    def get_registry(request: Request) -> CapsuleRegistry:
        return request.app.state.registry

    def anonymous_context(request: Request) -> CallContext:
        return CallContext(identity=None, now=request.app.state.clock.now())

    def caller_context(request: Request, username: str = Depends(get_current_user)) -> CallContext:
        return CallContext(identity=username, now=request.app.state.clock.now())

    @app.get("/status")
    async def service_status():
        return {"status": "running"}

    @app.post("/capsules", response_model=CapsuleCreatedResponse, status_code=status.HTTP_201_CREATED)
    def create_capsule(capsule: CapsuleCreate, ctx: CallContext = Depends(caller_context),
                       registry: CapsuleRegistry = Depends(get_registry)):
        """
        Create a new time capsule.
        - **message**: Content of the capsule, 1 to 1000 bytes.
        - **unlock_time**: Unix time after which the owner may reveal it.
        Returns the capsule id and owner.
        """
        capsule_id = registry.create_capsule(ctx, capsule.message, capsule.unlock_time)
        if settings.notify_on_unlock:
            schedule_open_notification(capsule_id, ctx.identity, capsule.unlock_time, ctx.now)
        return CapsuleCreatedResponse(id=capsule_id, owner=ctx.identity, unlock_time=capsule.unlock_time)

    @app.get("/capsules", response_model=UserCapsulesResponse)
    def list_capsules(ctx: CallContext = Depends(caller_context),
                      registry: CapsuleRegistry = Depends(get_registry)):
        """
        List the ids of the authenticated user's capsules in creation order.
        """
        return UserCapsulesResponse(owner=ctx.identity, capsule_ids=registry.get_user_capsules(ctx.identity))

    @app.get("/capsules/total", response_model=TotalResponse)
    def total_capsules(registry: CapsuleRegistry = Depends(get_registry)):
        return TotalResponse(total=registry.get_total_capsules())

    @app.get("/capsules/analytics", response_model=AnalyticsResponse)
    def get_analytics(ctx: CallContext = Depends(caller_context),
                      registry: CapsuleRegistry = Depends(get_registry)):
        """
        Get analytics for user's capsules.
        - **total_capsules**: Total number of capsules.
        - **pending_capsules**: Capsules whose unlock time has not come.
        - **revealable_capsules**: Unlocked capsules not revealed yet.
        - **revealed_capsules**: Capsules already revealed.
        """
        stats = registry.get_analytics(ctx, ctx.identity)
        return AnalyticsResponse(
            total_capsules=stats.total,
            pending_capsules=stats.locked,
            revealable_capsules=stats.revealable,
            revealed_capsules=stats.revealed,
        )

    @app.get("/capsules/{id}", response_model=CapsuleInfoResponse)
    def get_capsule(id: int, ctx: CallContext = Depends(anonymous_context),
                    registry: CapsuleRegistry = Depends(get_registry)):
        """
        Get a capsule's public details. The message is never included.
        """
        info = registry.get_capsule_info(ctx, id)
        return CapsuleInfoResponse(
            id=info.id,
            owner=info.owner,
            unlock_time=info.unlock_time,
            is_revealed=info.is_revealed,
            can_be_revealed=info.can_be_revealed,
        )

    @app.get("/capsules/{id}/can-reveal", response_model=CanRevealResponse)
    def can_reveal(id: int, ctx: CallContext = Depends(anonymous_context),
                   registry: CapsuleRegistry = Depends(get_registry)):
        return CanRevealResponse(id=id, can_reveal=registry.can_reveal_capsule(ctx, id))

    @app.post("/capsules/{id}/reveal", response_model=RevealResponse)
    def reveal_capsule(id: int, ctx: CallContext = Depends(caller_context),
                       registry: CapsuleRegistry = Depends(get_registry)):
        """
        Reveal a capsule and return its message.
        Returns 403 if the caller is not the owner or the capsule is still locked,
        409 if it was revealed before.
        """
        message = registry.reveal_capsule(ctx, id)
        return RevealResponse(id=id, message=message)

    @app.get("/users/{owner}/capsules", response_model=UserCapsulesResponse)
    def user_capsules(owner: str, registry: CapsuleRegistry = Depends(get_registry)):
        return UserCapsulesResponse(owner=owner, capsule_ids=registry.get_user_capsules(owner))

    @app.get("/events", response_model=List[EventResponse])
    def list_events(after: int = 0, kind: Optional[str] = None, capsule_id: Optional[int] = None,
                    owner: Optional[str] = None, registry: CapsuleRegistry = Depends(get_registry)):
        """
        Read the event log, oldest first.
        - **after**: Only entries with a larger sequence number.
        - **kind**, **capsule_id**, **owner**: Optional filters.
        """
        entries = registry.get_events(after=after, kind=kind, capsule_id=capsule_id, owner=owner)
        return [EventResponse(sequence=entry.sequence, **entry.event.to_dict()) for entry in entries]

    return app


app = create_app()
