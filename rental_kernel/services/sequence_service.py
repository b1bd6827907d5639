"""
SequenceService -- gap-free counters for the audit chain and batch jobs.

Each named sequence is one row of ``rental_sequence_counters``, read with
``SELECT ... FOR UPDATE`` and incremented in the caller's transaction, so
two scheduled runs against the same database never draw the same number.
A value only becomes visible when the caller commits.

Kernel > Services; used by AuditorService and BatchExecutor.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from rental_kernel.db.base import Base
from rental_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "rental_sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0)


class SequenceService:
    """Does NOT commit; the caller owns the transaction."""

    AUDIT_EVENT = "audit_event"
    BATCH_JOB = "batch_job"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert the counter at 0; None if a concurrent run inserted it first."""
        counter = SequenceCounter(name=name, current_value=0)
        try:
            with self._session.begin_nested():
                self._session.add(counter)
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return None
        return counter

    def next_value(self, name: str) -> int:
        """The next value of ``name``, starting at 1."""
        counter = self._lock(name) or self._create(name) or self._lock(name)
        if counter is None:
            raise RuntimeError(f"Sequence counter {name!r} could not be created")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None if the sequence was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
