"""Background workers.

Workers can be started via:
- run_worker_once(): Single processing cycle
- run_worker_loop(): Continuous processing with interval
"""

from app.workers.base import (
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from app.workers.scheduled_worker import ScheduledNotificationWorker
from app.workers.runner import (
    WorkerRunner,
    RunnerResult,
    run_worker_once,
    run_worker_loop,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Workers
    "ScheduledNotificationWorker",
    # Runner
    "WorkerRunner",
    "RunnerResult",
    "run_worker_once",
    "run_worker_loop",
    "configure_worker_logging",
]
