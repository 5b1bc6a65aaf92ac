import datetime
import logging
from typing import Dict, Iterable, List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from errors import SubmissionConflictError, SubmissionNotFoundError
from schemas import (PointsAward, REVIEWABLE_STATUSES, REVIEWED_STATUSES, Submission,
                     SubmissionStatus)

logger = logging.getLogger(__name__)

SUBMISSIONS_COLLECTION = 'action_submissions'
HISTORY_COLLECTION = 'student_actions'
LIST_LIMIT = 100
# Firestore caps the number of values in an 'in' filter.
IN_FILTER_CHUNK = 30

STATUS_GROUPS = {
    'active': REVIEWABLE_STATUSES,
    'reviewed': REVIEWED_STATUSES,
}


def status_filter_values(status: Optional[str]) -> Optional[frozenset]:
    """
    Expands a status query parameter into the set of statuses it matches.
    Returns None when every status matches.
    """
    if not status or status == 'all':
        return None
    if status in STATUS_GROUPS:
        return STATUS_GROUPS[status]
    return frozenset({SubmissionStatus(status).value})


@firestore.transactional
def review_submission_transaction(transaction, submission_ref, update_data):
    """Applies a review only if the submission is still awaiting one."""
    snapshot = submission_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise SubmissionNotFoundError(submission_ref.id)
    current_status = (snapshot.to_dict() or {}).get('status')
    if current_status not in REVIEWABLE_STATUSES:
        raise SubmissionConflictError(submission_ref.id, current_status)
    transaction.update(submission_ref, update_data)


class SubmissionRepository:
    """Submission records and points history in Firestore."""

    def __init__(self, client, submissions_collection=SUBMISSIONS_COLLECTION,
                 history_collection=HISTORY_COLLECTION):
        self._db = client
        self._submissions = client.collection(submissions_collection)
        self._history = client.collection(history_collection)

    def create_submission(self, submission: Submission) -> str:
        ref = self._submissions.document()
        ref.set(submission.to_document())
        logger.info(f"Stored submission {ref.id} for student {submission.studentId} with status {submission.status}")
        return ref.id

    def get_submission(self, submission_id: str) -> Submission:
        doc = self._submissions.document(submission_id).get()
        if not doc.exists:
            raise SubmissionNotFoundError(submission_id)
        return Submission.from_document(doc.id, doc.to_dict())

    def update_review(self, submission_id: str, status: SubmissionStatus, reviewer: str,
                      notes: str, final_points: int, reviewed_at: datetime.datetime) -> None:
        update_data = {
            'status': SubmissionStatus(status).value,
            'reviewedAt': reviewed_at,
            'reviewedBy': reviewer,
            'teacherNotes': notes or '',
            'finalPoints': final_points,
        }
        submission_ref = self._submissions.document(submission_id)
        review_submission_transaction(self._db.transaction(), submission_ref, update_data)
        logger.info(f"Submission {submission_id} reviewed by {reviewer}: {update_data['status']}")

    def append_history(self, award: PointsAward) -> bool:
        """
        Writes the history entry keyed by submission id.
        Returns False when the entry already exists, so replays are harmless.
        """
        try:
            self._history.document(award.submissionId).create(award.model_dump())
        except gcp_exceptions.AlreadyExists:
            logger.info(f"History entry for submission {award.submissionId} already exists")
            return False
        return True

    def mark_points_synced(self, submission_id: str) -> None:
        self._submissions.document(submission_id).update({'pointsSynced': True})

    def list_by_student(self, student_id: str) -> List[Submission]:
        query = self._submissions.where(
            filter=firestore.FieldFilter('studentId', '==', student_id)
        ).order_by('submittedAt', direction=firestore.Query.DESCENDING)
        return [Submission.from_document(doc.id, doc.to_dict()) for doc in query.stream()]

    def list_by_filter(self, classroom_ids: Optional[Iterable[str]] = None,
                       status: Optional[str] = None, limit: int = LIST_LIMIT) -> List[Submission]:
        """
        Newest submissions first, at most `limit`. Each scope query is filtered,
        ordered and limited in Firestore; only the merge happens here.
        Requires composite indexes on (classroomId, status, submittedAt desc).
        """
        wanted = status_filter_values(status)
        docs = []
        for query in self._scope_queries(classroom_ids, statuses=wanted):
            ordered = query.order_by('submittedAt', direction=firestore.Query.DESCENDING).limit(limit)
            docs.extend(ordered.stream())
        submissions = [Submission.from_document(doc.id, doc.to_dict()) for doc in docs]
        submissions.sort(key=lambda s: s.submittedAt, reverse=True)
        return submissions[:limit]

    def count_by_status(self, classroom_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Per-status counts computed with Firestore aggregation queries."""
        totals = {s.value: 0 for s in SubmissionStatus}
        for query in self._scope_queries(classroom_ids):
            for status in totals:
                aggregate = query.where(filter=firestore.FieldFilter('status', '==', status)).count()
                totals[status] += aggregate.get()[0][0].value
        return {
            'all': sum(totals.values()),
            'ai_flagged': totals[SubmissionStatus.AI_FLAGGED.value],
            'pending_review': totals[SubmissionStatus.PENDING_REVIEW.value],
            'reviewed': sum(totals[s] for s in REVIEWED_STATUSES),
        }

    def list_unsynced_approvals(self, limit: int = LIST_LIMIT) -> List[Submission]:
        # Requires a composite index on (status, pointsSynced).
        query = self._submissions.where(
            filter=firestore.FieldFilter('status', '==', SubmissionStatus.APPROVED.value)
        ).where(
            filter=firestore.FieldFilter('pointsSynced', '==', False)
        ).limit(limit)
        return [Submission.from_document(doc.id, doc.to_dict()) for doc in query.stream()]

    def ping(self) -> None:
        list(self._submissions.limit(1).stream())

    def _scope_queries(self, classroom_ids: Optional[Iterable[str]], statuses: Optional[frozenset] = None) -> list:
        """
        Queries covering the given classrooms plus submissions without a classroom,
        or the whole collection when no classroom ids are given.
        """
        base = self._submissions
        if statuses:
            values = sorted(statuses)
            if len(values) == 1:
                base = base.where(filter=firestore.FieldFilter('status', '==', values[0]))
            else:
                base = base.where(filter=firestore.FieldFilter('status', 'in', values))
        if classroom_ids is None:
            return [base]

        ids = list(dict.fromkeys(classroom_ids))
        # Firestore allows 30 disjunctions per query: status values x classroom ids.
        chunk_size = max(1, IN_FILTER_CHUNK // max(1, len(statuses or ())))
        queries = [base.where(filter=firestore.FieldFilter('classroomId', '==', None))]
        for start in range(0, len(ids), chunk_size):
            chunk = ids[start:start + chunk_size]
            queries.append(base.where(filter=firestore.FieldFilter('classroomId', 'in', chunk)))
        return queries
