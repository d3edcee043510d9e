"""
API Dependencies
Common dependencies for FastAPI routes (database sessions, dispatch, progress).
"""

from typing import Callable, Generator

from creative_engine.core.database import SessionLocal
from creative_engine.services.status import StatusPublisher


def get_db() -> Generator:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_dispatcher() -> Callable[[str], bool]:
    """Fire-and-forget job dispatch."""
    from creative_engine.workers.queue import get_queue_manager
    return get_queue_manager().dispatch


def get_sweep_trigger() -> Callable[[], object]:
    from creative_engine.workers.queue import get_queue_manager
    return get_queue_manager().trigger_sweep


def get_status_publisher() -> StatusPublisher:
    return StatusPublisher()
