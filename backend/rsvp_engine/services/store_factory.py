"""
Store factory.
Configures which attendee store and membership directory the service uses.
"""

from rsvp_engine.core.config import Settings, get_settings
from rsvp_engine.core.logging import get_logger
from rsvp_engine.db.session import create_engine, create_sessionmaker
from rsvp_engine.infrastructure import (
    InMemoryAttendeeStore,
    SqlAttendeeStore,
    SqlMembershipDirectory,
    StaticMembershipDirectory,
)
from rsvp_engine.services.cache_service import invalidate_on_commit
from rsvp_engine.services.interfaces import AttendeeStore, MembershipDirectory
from rsvp_engine.services.records import MembershipTier
from rsvp_engine.services.rsvp_service import RsvpService

logger = get_logger(__name__)


def build_store(settings: Settings) -> AttendeeStore:
    """
    Get configured attendee store.

    Store selection via STORE_BACKEND:
    - sql: PostgreSQL (production, multi-process safe)
    - memory: single process only (tests, local runs)
    """
    if settings.STORE_BACKEND == "memory":
        return InMemoryAttendeeStore()

    engine = create_engine(settings)
    return SqlAttendeeStore(create_sessionmaker(engine), engine=engine)


def build_membership_directory(settings: Settings, store: AttendeeStore) -> MembershipDirectory:
    default = MembershipTier.parse(settings.DEFAULT_MEMBERSHIP_TIER)
    if isinstance(store, SqlAttendeeStore):
        return SqlMembershipDirectory(store.session_factory, default=default)
    return StaticMembershipDirectory(default=default)


def build_rsvp_service(settings: Settings = None) -> RsvpService:
    settings = settings or get_settings()
    store = build_store(settings)
    store.add_commit_hook(invalidate_on_commit)

    logger.info("rsvp_service_configured", store=type(store).__name__)
    return RsvpService(
        store,
        build_membership_directory(settings, store),
        max_dependents=settings.MAX_DEPENDENTS_PER_PRIMARY,
        max_attempts=settings.TXN_MAX_ATTEMPTS,
        max_backoff_ms=settings.TXN_RETRY_MAX_BACKOFF_MS,
    )
