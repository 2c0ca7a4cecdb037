# campusdesk/services/roll_number_service.py
"""Dense, name-ordered roll numbers per class-section and academic year.

Every recalculation recomputes the whole scope from scratch: the active,
non-deleted enrollments are sorted by (first_name, last_name, enrollment id)
and numbered 1..N. Names compare by Unicode code point, which matches a
byte-wise UTF-8 ("C") collation, so the order does not depend on the
database locale.

Recalculations of one scope are serialized by an in-process lock and, on
PostgreSQL, by a transaction-scoped advisory lock plus row locks on the
scope's enrollments. Different scopes never wait on each other.
"""
import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.exceptions import ConstraintViolation, RecalculationError
from ..models.enrollment import Enrollment, EnrollmentStatus, RollScope
from ..models.person import Person
from ..models.student import Student

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}

_scope_locks: "weakref.WeakValueDictionary[RollScope, asyncio.Lock]" = weakref.WeakValueDictionary()


def _scope_lock(scope: RollScope) -> asyncio.Lock:
    lock = _scope_locks.get(scope)
    if lock is None:
        lock = asyncio.Lock()
        _scope_locks[scope] = lock
    return lock


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@dataclass(frozen=True)
class RecalculationSummary:
    scope: RollScope
    active_count: int
    renumbered: int


@dataclass
class RecalculationOutcome:
    scope: RollScope
    succeeded: bool
    summary: Optional[RecalculationSummary] = None
    error: Optional[Exception] = None


def rank_enrollments(rows: Iterable) -> Dict[uuid.UUID, int]:
    """Map enrollment id -> roll number for rows carrying ``id``, ``first_name`` and ``last_name``."""
    ordered = sorted(rows, key=lambda row: (row.first_name or "", row.last_name or "", row.id))
    return {row.id: position for position, row in enumerate(ordered, start=1)}


class RollNumberRecalculator:
    """Reassigns roll numbers for one scope per call, each in its own transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.max_retries = max(1, max_retries if max_retries is not None else settings.roll_recalc_max_retries)
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.roll_recalc_retry_backoff_seconds

    async def recalculate(self, class_section_id: uuid.UUID, academic_year_id: uuid.UUID) -> RecalculationSummary:
        scope = RollScope(class_section_id, academic_year_id)

        async with _scope_lock(scope):
            attempt = 0
            while True:
                attempt += 1
                try:
                    summary = await self._recalculate_once(scope)
                except IntegrityError as e:
                    logger.error(
                        "Roll number constraint violated for class_section=%s academic_year=%s: %s",
                        scope.class_section_id, scope.academic_year_id, e.orig,
                    )
                    raise ConstraintViolation(
                        f"Roll numbers for class section {scope.class_section_id} were rejected by the store",
                        constraint="uq_enrollment_scope_roll",
                    ) from e
                except DBAPIError as e:
                    if _sqlstate(e) in RETRYABLE_SQLSTATES and attempt < self.max_retries:
                        logger.warning(
                            "Roll number recalculation conflict for class_section=%s (attempt %d/%d), retrying",
                            scope.class_section_id, attempt, self.max_retries,
                        )
                        await asyncio.sleep(self.retry_backoff * attempt)
                        continue
                    raise RecalculationError(
                        f"Store error after {attempt} attempt(s): {e.orig}",
                        scope.class_section_id, scope.academic_year_id,
                    ) from e
                except SQLAlchemyError as e:
                    raise RecalculationError(str(e), scope.class_section_id, scope.academic_year_id) from e
                except (OSError, asyncio.TimeoutError) as e:
                    raise RecalculationError(
                        f"Store unreachable: {e}", scope.class_section_id, scope.academic_year_id
                    ) from e

                logger.info(
                    "Recalculated roll numbers for class_section=%s academic_year=%s: %d active, %d renumbered",
                    scope.class_section_id, scope.academic_year_id, summary.active_count, summary.renumbered,
                )
                return summary

    async def recalculate_quietly(self, class_section_id: uuid.UUID, academic_year_id: uuid.UUID) -> RecalculationOutcome:
        """Post-commit form: failures are logged and reported in the outcome instead of raised."""
        scope = RollScope(class_section_id, academic_year_id)
        try:
            summary = await self.recalculate(class_section_id, academic_year_id)
        except (RecalculationError, ConstraintViolation) as e:
            logger.error(
                "Roll number recalculation failed for class_section=%s academic_year=%s: %s",
                class_section_id, academic_year_id, e.message,
                exc_info=e,
                extra={
                    "class_section_id": str(class_section_id),
                    "academic_year_id": str(academic_year_id),
                    "error_type": type(e).__name__,
                },
            )
            return RecalculationOutcome(scope=scope, succeeded=False, error=e)
        return RecalculationOutcome(scope=scope, succeeded=True, summary=summary)

    async def recalculate_all(self) -> List[RecalculationOutcome]:
        """Full reconciliation of every scope that has active enrollments."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Enrollment.class_section_id, Enrollment.academic_year_id)
                    .where(
                        Enrollment.status == EnrollmentStatus.ACTIVE.value,
                        Enrollment.deleted_at.is_(None),
                    )
                    .distinct()
                )
                scopes = [RollScope(*row) for row in result.all()]
        except (SQLAlchemyError, OSError) as e:
            raise RecalculationError(f"Could not list scopes: {e}") from e

        outcomes = []
        for scope in scopes:
            outcomes.append(await self.recalculate_quietly(*scope))
        return outcomes

    async def _recalculate_once(self, scope: RollScope) -> RecalculationSummary:
        async with self.session_factory() as session:
            async with session.begin():
                await self._lock_scope(session, scope)

                in_scope = (
                    Enrollment.class_section_id == scope.class_section_id,
                    Enrollment.academic_year_id == scope.academic_year_id,
                    Enrollment.status == EnrollmentStatus.ACTIVE.value,
                    Enrollment.deleted_at.is_(None),
                )
                stmt = (
                    select(Enrollment.id, Enrollment.roll_number, Person.first_name, Person.last_name)
                    .join(Student, Enrollment.student_id == Student.id)
                    .join(Person, Student.person_id == Person.id)
                    .where(*in_scope, Student.deleted_at.is_(None))
                    .with_for_update(of=Enrollment)
                )
                rows = (await session.execute(stmt)).all()

                # Active enrollments of soft-deleted students drop out of the numbering
                await session.execute(
                    update(Enrollment)
                    .where(
                        *in_scope,
                        Enrollment.roll_number.is_not(None),
                        Enrollment.student_id.in_(select(Student.id).where(Student.deleted_at.is_not(None))),
                    )
                    .values(roll_number=None)
                    .execution_options(synchronize_session=False)
                )

                ranking = rank_enrollments(rows)
                current = {row.id: row.roll_number for row in rows}
                changed = {enrollment_id: number for enrollment_id, number in ranking.items()
                           if current[enrollment_id] != number}

                if changed:
                    # Clear first so no intermediate state repeats a number in the scope
                    await session.execute(
                        update(Enrollment)
                        .where(Enrollment.id.in_(list(changed)))
                        .values(roll_number=None)
                        .execution_options(synchronize_session=False)
                    )
                    await session.execute(
                        update(Enrollment),
                        [{"id": enrollment_id, "roll_number": number} for enrollment_id, number in changed.items()],
                    )

        return RecalculationSummary(scope=scope, active_count=len(rows), renumbered=len(changed))

    @staticmethod
    async def _lock_scope(session: AsyncSession, scope: RollScope) -> None:
        if session.bind.dialect.name != "postgresql":
            return
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtextextended(:scope_key, 0))"),
            {"scope_key": f"roll_numbers:{scope.class_section_id}:{scope.academic_year_id}"},
        )
