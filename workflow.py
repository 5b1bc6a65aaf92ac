"""
Submission workflow: verify -> decide -> persist -> award -> notify.

The submission document is always written before the ledger is touched, so
it is the record of what was decided. Ledger awards are keyed by the
submission id and can be replayed by retry_award() or reconcile_awards()
without re-running verification.
"""

import datetime
import logging
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from decision_engine import decide
from evidence_store import EvidenceImageStore
from errors import (InvalidReviewError, LedgerUnavailableError, StudentNotFoundError,
                    SubmissionConflictError)
from schemas import (AUTO_APPROVE_REVIEWER, REVIEWABLE_STATUSES, Evidence, Notification,
                     NotificationType, PointsAward, ReviewAction, Submission, SubmissionStatus,
                     VerificationResult)

logger = logging.getLogger(__name__)

ACTIVITY_TYPE = 'action'


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SubmissionOutcome(BaseModel):
    submissionId: str
    status: SubmissionStatus
    autoApproved: bool
    pointsAwarded: bool
    awardPending: bool
    message: str
    aiVerification: VerificationResult


class ReviewOutcome(BaseModel):
    submissionId: str
    action: ReviewAction
    status: SubmissionStatus
    finalPoints: int
    awardPending: bool
    message: str


class SubmissionWorkflow:
    def __init__(self, oracle, repository, ledger, notifier, image_store=None,
                 schedule_award_retry: Optional[Callable[[str], None]] = None,
                 clock: Callable[[], datetime.datetime] = utcnow):
        self.oracle = oracle
        self.repository = repository
        self.ledger = ledger
        self.notifier = notifier
        self.image_store = image_store or EvidenceImageStore()
        self._schedule_award_retry = schedule_award_retry
        self._clock = clock

    # --- Submission ---

    def submit(self, student_id: str, evidence: Evidence) -> SubmissionOutcome:
        student = self.ledger.get_student(student_id)

        verification = self.oracle.verify(evidence)
        decision = decide(verification)
        now = self._clock()
        logger.info(f"Decision for {student_id} {evidence.actionType}: {decision.status.value} "
                    f"(confidence={verification.confidence}, verified={verification.verified})")

        # Only references or thumbnails go into the submission document.
        stored_images = self.image_store.store(student_id, evidence.images)

        submission = Submission(
            studentId=student_id,
            studentName=student.name,
            classroomId=student.classroomId,
            **evidence.model_dump(exclude={'images'}),
            images=stored_images,
            status=decision.status,
            autoApproved=decision.auto_approved,
            aiVerification=verification,
            submittedAt=now,
            reviewedAt=now if decision.auto_approved else None,
            reviewedBy=AUTO_APPROVE_REVIEWER if decision.auto_approved else None,
            finalPoints=decision.award_points,
        )
        submission.id = self.repository.create_submission(submission)

        points_awarded = False
        if decision.auto_approved:
            points_awarded = self._award(submission, decision.award_points)

        if decision.status == SubmissionStatus.AI_FLAGGED and submission.classroomId:
            self.notifier.notify(Notification(
                type=NotificationType.ACTION_REVIEW_NEEDED,
                classroomId=submission.classroomId,
                studentName=submission.studentName,
                submissionId=submission.id,
                message=f"{submission.studentName}'s action needs review - AI flagged for verification",
                createdAt=now,
            ))

        return SubmissionOutcome(
            submissionId=submission.id,
            status=decision.status,
            autoApproved=decision.auto_approved,
            pointsAwarded=points_awarded,
            awardPending=decision.auto_approved and not points_awarded,
            message=self._submission_message(verification, decision.auto_approved, points_awarded),
            aiVerification=verification,
        )

    @staticmethod
    def _submission_message(verification, auto_approved, points_awarded):
        if not verification.verified:
            return "Action requires manual review by teacher."
        if not auto_approved:
            return "Action verified! Pending teacher review."
        if points_awarded:
            return "Action verified! Points awarded automatically."
        return "Action verified! Points will be awarded shortly."

    # --- Review ---

    def review(self, submission_id: str, action, reviewer_id: str,
               points: Optional[int] = None, notes: str = '') -> ReviewOutcome:
        try:
            action = ReviewAction(action)
        except ValueError:
            raise InvalidReviewError("action must be 'approve' or 'reject'")
        if not reviewer_id:
            raise InvalidReviewError("Reviewer ID required")
        if reviewer_id == AUTO_APPROVE_REVIEWER:
            raise InvalidReviewError(f"'{AUTO_APPROVE_REVIEWER}' is reserved for automatic approvals")
        approve = action is ReviewAction.APPROVE
        if approve and (points is None or isinstance(points, bool) or not isinstance(points, int) or points < 0):
            raise InvalidReviewError("A non-negative integer points value is required to approve")

        submission = self.repository.get_submission(submission_id)
        if submission.status not in REVIEWABLE_STATUSES:
            raise SubmissionConflictError(submission_id, submission.status)

        status = SubmissionStatus.APPROVED if approve else SubmissionStatus.REJECTED
        final_points = points if approve else 0
        now = self._clock()
        # Guarded by the current status inside the store; a concurrent reviewer gets a conflict here.
        self.repository.update_review(submission_id, status, reviewer_id, notes, final_points, now)
        submission = submission.model_copy(update={
            'status': status.value, 'reviewedAt': now, 'reviewedBy': reviewer_id,
            'teacherNotes': notes or '', 'finalPoints': final_points,
        })

        award_pending = False
        if approve:
            award_pending = not self._award(submission, final_points)
            self.notifier.notify(Notification(
                type=NotificationType.ACTION_APPROVED,
                studentId=submission.studentId,
                studentName=submission.studentName,
                submissionId=submission_id,
                message=f"Your {submission.actionType} action was approved for {final_points} points",
                createdAt=now,
            ))
        else:
            reason = f": {notes}" if notes else ""
            self.notifier.notify(Notification(
                type=NotificationType.ACTION_REJECTED,
                studentId=submission.studentId,
                studentName=submission.studentName,
                submissionId=submission_id,
                message=f"Your {submission.actionType} action was rejected{reason}",
                createdAt=now,
            ))

        return ReviewOutcome(
            submissionId=submission_id,
            action=action,
            status=status,
            finalPoints=final_points,
            awardPending=award_pending,
            message=f"Action {'approved' if approve else 'rejected'} successfully",
        )

    # --- Awards & reconciliation ---

    def _award(self, submission: Submission, points: int, schedule_retry: bool = True) -> bool:
        """
        Issues the ledger award and the history entry for an approved submission.
        Returns False if either step failed; the submission stays unsynced for a later replay.
        """
        try:
            self.ledger.award_points(
                submission.studentId, points, ACTIVITY_TYPE, submission.id,
                metadata={'actionType': submission.actionType, 'reviewedBy': submission.reviewedBy},
            )
            self.repository.append_history(PointsAward(
                studentId=submission.studentId,
                submissionId=submission.id,
                actionType=submission.actionType,
                points=points,
                date=self._clock(),
            ))
            self.repository.mark_points_synced(submission.id)
            return True
        except (LedgerUnavailableError, StudentNotFoundError) as e:
            logger.error(f"Award of {points} points for submission {submission.id} failed, "
                         f"submission is committed and the award is pending: {e}")
        except Exception as e:
            logger.error(f"Award bookkeeping for submission {submission.id} failed: {e}", exc_info=True)

        if schedule_retry and self._schedule_award_retry:
            try:
                self._schedule_award_retry(submission.id)
            except Exception as e:
                logger.error(f"Could not schedule award retry for {submission.id}, "
                             f"reconciliation will pick it up: {e}")
        return False

    def retry_award(self, submission_id: str) -> bool:
        submission = self.repository.get_submission(submission_id)
        if submission.status != SubmissionStatus.APPROVED.value:
            logger.warning(f"Not retrying award for {submission_id}: status is {submission.status}")
            return True
        if submission.pointsSynced:
            return True
        return self._award(submission, submission.finalPoints, schedule_retry=False)

    def reconcile_awards(self, limit: int = 100) -> int:
        """Replays awards for approved submissions the ledger never confirmed."""
        pending = self.repository.list_unsynced_approvals(limit)
        synced = sum(1 for submission in pending
                     if self._award(submission, submission.finalPoints, schedule_retry=False))
        logger.info(f"Award reconciliation synced {synced} of {len(pending)} pending submissions")
        return synced

    # --- Queries ---

    def list_student_submissions(self, student_id: str) -> List[Submission]:
        return self.repository.list_by_student(student_id)

    def list_submissions(self, classroom_ids: Optional[Iterable[str]] = None,
                         status: Optional[str] = None) -> List[Submission]:
        return self.repository.list_by_filter(classroom_ids=classroom_ids, status=status)

    def count_submissions(self, classroom_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        return self.repository.count_by_status(classroom_ids)
