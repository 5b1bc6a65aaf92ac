import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import LedgerUnavailableError, StudentNotFoundError
from models import PointTransaction, Student, db
from schemas import AwardResult, StudentRecord

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = frozenset({'quiz', 'task', 'learning_path', 'action', 'bonus'})


class PointsLedger:
    """
    Authoritative student point totals in the relational store.

    Totals only ever change through award_points(), which increments in SQL
    so concurrent awards for one student can't lose an update.
    """

    def __init__(self, database=db):
        self._db = database

    @property
    def session(self):
        return self._db.session

    def get_student(self, student_id: str) -> StudentRecord:
        try:
            student = self.session.get(Student, student_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load student {student_id}: {e}", exc_info=True)
            raise LedgerUnavailableError(f"Points ledger unavailable: {e}") from e
        if student is None:
            raise StudentNotFoundError(student_id)
        return StudentRecord(
            studentId=student.id,
            name=student.name,
            classroomId=student.classroom_id,
            ecoPoints=student.eco_points,
            completedTasks=student.completed_tasks,
            rank=student.rank,
        )

    def award_points(self, student_id: str, points: int, activity_type: str,
                     activity_id: Optional[str] = None, metadata: Optional[dict] = None) -> AwardResult:
        if activity_type not in ACTIVITY_TYPES:
            raise ValueError(f"Invalid activity type. Must be one of: {', '.join(sorted(ACTIVITY_TYPES))}")
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValueError("points must be a non-negative integer")

        session = self.session
        try:
            result = session.execute(
                update(Student)
                .where(Student.id == student_id)
                .values(eco_points=Student.eco_points + points,
                        completed_tasks=Student.completed_tasks + 1)
            )
            if result.rowcount == 0:
                session.rollback()
                raise StudentNotFoundError(student_id)

            session.add(PointTransaction(
                student_id=student_id,
                points=points,
                activity_type=activity_type,
                activity_id=activity_id,
                details=metadata or {},
            ))
            try:
                session.flush()
            except IntegrityError:
                # Same activity already awarded; undo this increment and report the standing as is.
                session.rollback()
                logger.info(f"Skipping duplicate {activity_type} award {activity_id} for student {student_id}")
                return self._standing(student_id, duplicate=True)

            new_total = session.execute(
                select(Student.eco_points).where(Student.id == student_id)
            ).scalar_one()
            new_rank = self._rank_for(new_total)
            session.execute(update(Student).where(Student.id == student_id).values(rank=new_rank))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to award {points} points to {student_id} for {activity_type}:{activity_id}: {e}",
                         exc_info=True)
            raise LedgerUnavailableError(f"Points ledger unavailable: {e}") from e

        logger.info(f"Awarded {points} points to {student_id} for {activity_type}:{activity_id}. "
                    f"New total {new_total}, rank {new_rank}")
        return AwardResult(newTotal=new_total, newRank=new_rank, pointsAwarded=points)

    def recompute_ranks(self, batch_size: int = 500) -> int:
        """Reassigns every student's rank ordered by points, committing in batches."""
        session = self.session
        updated = 0
        try:
            query = select(Student).order_by(Student.eco_points.desc(), Student.id.asc())
            for rank, student in enumerate(session.scalars(query).all(), 1):
                student.rank = rank
                updated += 1
                if updated % batch_size == 0:
                    logger.info(f"Committing a batch of {batch_size} rank updates...")
                    session.commit()
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"An error occurred during the rank update process: {e}", exc_info=True)
            raise LedgerUnavailableError(f"Points ledger unavailable: {e}") from e

        logger.info(f"Successfully updated the rank for {updated} students.")
        return updated

    def _rank_for(self, total: int) -> int:
        ahead = self.session.execute(
            select(func.count()).select_from(Student).where(Student.eco_points > total)
        ).scalar_one()
        return ahead + 1

    def _standing(self, student_id: str, duplicate: bool = False) -> AwardResult:
        total = self.session.execute(
            select(Student.eco_points).where(Student.id == student_id)
        ).scalar_one()
        return AwardResult(newTotal=total, newRank=self._rank_for(total), pointsAwarded=0, duplicate=duplicate)
