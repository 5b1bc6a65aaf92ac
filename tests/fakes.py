"""In-memory stand-ins for the document store, the verifier and the notification sink."""

import threading
import uuid

from errors import SubmissionConflictError, SubmissionNotFoundError
from schemas import REVIEWABLE_STATUSES, REVIEWED_STATUSES, SubmissionStatus
from submission_repository import status_filter_values


class FakeOracle:
    configured = True
    model = "fake-verifier"

    def __init__(self, result):
        self.result = result
        self.calls = []

    def verify(self, evidence):
        self.calls.append(evidence)
        return self.result


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)


class InMemorySubmissionRepository:
    def __init__(self):
        self.submissions = {}
        self.history = {}
        self._lock = threading.Lock()

    def create_submission(self, submission):
        submission_id = uuid.uuid4().hex
        with self._lock:
            self.submissions[submission_id] = submission.model_copy(update={'id': submission_id}, deep=True)
        return submission_id

    def get_submission(self, submission_id):
        with self._lock:
            if submission_id not in self.submissions:
                raise SubmissionNotFoundError(submission_id)
            return self.submissions[submission_id].model_copy(deep=True)

    def update_review(self, submission_id, status, reviewer, notes, final_points, reviewed_at):
        with self._lock:
            current = self.submissions.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            if current.status not in REVIEWABLE_STATUSES:
                raise SubmissionConflictError(submission_id, current.status)
            self.submissions[submission_id] = current.model_copy(update={
                'status': SubmissionStatus(status).value,
                'reviewedBy': reviewer,
                'reviewedAt': reviewed_at,
                'teacherNotes': notes or '',
                'finalPoints': final_points,
            })

    def append_history(self, award):
        with self._lock:
            if award.submissionId in self.history:
                return False
            self.history[award.submissionId] = award
            return True

    def mark_points_synced(self, submission_id):
        with self._lock:
            current = self.submissions[submission_id]
            self.submissions[submission_id] = current.model_copy(update={'pointsSynced': True})

    def list_by_student(self, student_id):
        found = [s for s in self.submissions.values() if s.studentId == student_id]
        return sorted(found, key=lambda s: s.submittedAt, reverse=True)

    def list_by_filter(self, classroom_ids=None, status=None, limit=100):
        wanted = status_filter_values(status)
        found = [s for s in self._scoped(classroom_ids) if wanted is None or s.status in wanted]
        return sorted(found, key=lambda s: s.submittedAt, reverse=True)[:limit]

    def count_by_status(self, classroom_ids=None):
        scoped = self._scoped(classroom_ids)
        return {
            'all': len(scoped),
            'ai_flagged': sum(1 for s in scoped if s.status == 'ai_flagged'),
            'pending_review': sum(1 for s in scoped if s.status == 'pending_review'),
            'reviewed': sum(1 for s in scoped if s.status in REVIEWED_STATUSES),
        }

    def list_unsynced_approvals(self, limit=100):
        return [s for s in self.submissions.values()
                if s.status == 'approved' and not s.pointsSynced][:limit]

    def ping(self):
        return None

    def _scoped(self, classroom_ids):
        if classroom_ids is None:
            return list(self.submissions.values())
        ids = set(classroom_ids)
        return [s for s in self.submissions.values() if s.classroomId is None or s.classroomId in ids]
