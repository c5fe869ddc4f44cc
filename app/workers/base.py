"""Base worker abstraction.

A worker cycle fetches a batch of due items and, for each one, claims it,
processes it and records the outcome. Each item gets its own transaction:
a failure rolls back that item's work, records the error on the item and
moves on to the next.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Overall outcome of one worker cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    NO_WORK = "no_work"


class ItemOutcome(str, Enum):
    """Outcome of a single item within a cycle."""

    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class WorkerResult:
    """Statistics of one worker cycle.

    Attributes:
        status: Overall outcome
        processed_count: Items completed
        failed_count: Items marked failed
        skipped_count: Items another run claimed first
        duration_ms: Wall time of the cycle
        errors: ``{"item_id", "error"}`` per failed item
        metadata: Worker-specific extras
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_counts(
        cls,
        processed: int,
        failed: int,
        skipped: int,
        duration_ms: float,
        errors: list[dict[str, Any]],
    ) -> "WorkerResult":
        if processed and failed:
            status = WorkerStatus.PARTIAL
        elif processed:
            status = WorkerStatus.SUCCESS
        elif failed:
            status = WorkerStatus.FAILED
        else:
            status = WorkerStatus.NO_WORK
        return cls(
            status=status,
            processed_count=processed,
            failed_count=failed,
            skipped_count=skipped,
            duration_ms=duration_ms,
            errors=errors,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


T = TypeVar("T")


class WorkerBase(ABC, Generic[T]):
    """Claim / process / complete loop over a batch of work items.

    Subclasses provide the storage hooks:
        fetch_pending -> mark_processing -> process_item
            -> mark_completed | mark_failed
    """

    def __init__(self, batch_size: int = 10) -> None:
        if batch_size < 0:
            raise ValueError(f"batch_size must not be negative, got {batch_size}")
        self.batch_size = batch_size
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        pass

    @abstractmethod
    def fetch_pending(self, session: Session) -> list[T]:
        """Return at most ``batch_size`` items that are due."""
        pass

    @abstractmethod
    def mark_processing(self, session: Session, item: T) -> bool:
        """Claim ``item`` for this run.

        Must be atomic in the database: of several concurrent callers only
        one may get True.
        """
        pass

    @abstractmethod
    def process_item(self, session: Session, item: T) -> None:
        """Do the work; raise to fail the item."""
        pass

    @abstractmethod
    def mark_completed(self, session: Session, item: T) -> None:
        pass

    @abstractmethod
    def mark_failed(self, session: Session, item: T, error: str) -> None:
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        pass

    def run(self, session: Session) -> WorkerResult:
        """Run one cycle over the currently due items."""
        start = time.monotonic()
        counts = {outcome: 0 for outcome in ItemOutcome}
        errors: list[dict[str, Any]] = []

        try:
            items = self.fetch_pending(session)
        except Exception as e:
            session.rollback()
            self._logger.error(
                f"[{self.worker_name}] Could not fetch pending items",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                duration_ms=self._elapsed_ms(start),
                errors=[{"error": str(e)}],
            )

        if not items:
            self._logger.debug(f"[{self.worker_name}] Nothing due")
            return WorkerResult(status=WorkerStatus.NO_WORK, duration_ms=self._elapsed_ms(start))

        self._logger.info(
            f"[{self.worker_name}] {len(items)} items due",
            extra={"batch_size": self.batch_size},
        )
        for item in items:
            outcome, error = self._handle(session, item)
            counts[outcome] += 1
            if error is not None:
                errors.append({"item_id": str(self.get_item_id(item)), "error": error})

        result = WorkerResult.from_counts(
            processed=counts[ItemOutcome.PROCESSED],
            failed=counts[ItemOutcome.FAILED],
            skipped=counts[ItemOutcome.SKIPPED],
            duration_ms=self._elapsed_ms(start),
            errors=errors,
        )
        self._logger.info(f"[{self.worker_name}] Cycle complete", extra=result.to_dict())
        return result

    def _handle(self, session: Session, item: T) -> tuple[ItemOutcome, str | None]:
        item_id = self.get_item_id(item)
        if not self.mark_processing(session, item):
            self._logger.debug(f"[{self.worker_name}] {item_id} already claimed")
            return ItemOutcome.SKIPPED, None

        try:
            self.process_item(session, item)
            self.mark_completed(session, item)
            session.commit()
        except Exception as e:
            session.rollback()
            error = str(e)[:500] or e.__class__.__name__
            self.mark_failed(session, item, error)
            session.commit()
            self._logger.error(
                f"[{self.worker_name}] {item_id} failed",
                extra={"item_id": str(item_id), "error": error},
                exc_info=True,
            )
            return ItemOutcome.FAILED, error

        self._logger.info(f"[{self.worker_name}] {item_id} processed", extra={"item_id": str(item_id)})
        return ItemOutcome.PROCESSED, None

    def _elapsed_ms(self, start: float) -> float:
        return (time.monotonic() - start) * 1000
