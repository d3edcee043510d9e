# Workers package - job processing with RQ and the database-backed claim

from creative_engine.workers.base import (
    with_retry,
    BaseWorker
)
from creative_engine.workers.queue import (
    QueueManager,
    get_queue_manager
)

__all__ = [
    # Base
    "with_retry",
    "BaseWorker",
    # Queue
    "QueueManager",
    "get_queue_manager",
]
