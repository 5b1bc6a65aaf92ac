"""Unit tests for the Firestore submission repository, with the client mocked out."""

import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcp_exceptions

from errors import SubmissionConflictError, SubmissionNotFoundError
from schemas import PointsAward
from submission_repository import (SubmissionRepository, review_submission_transaction,
                                   status_filter_values)
from tests.conftest import FIXED_NOW, PNG_DATA_URI


def _document(status="ai_flagged", classroom="class-7b", submitted=FIXED_NOW, doc_id="sub-1"):
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = True
    doc.to_dict.return_value = {
        "studentId": "student-ana",
        "studentName": "Ana Lima",
        "classroomId": classroom,
        "actionType": "recycling",
        "description": "Recycled bottles",
        "images": [PNG_DATA_URI],
        "status": status,
        "autoApproved": False,
        "aiVerification": {"verified": False, "confidence": 0.4, "reasoning": "Blurry",
                           "suggestedPoints": 80, "flaggedIssues": ["blurry"]},
        "submittedAt": submitted,
    }
    return doc


def _snapshot(status):
    snapshot = MagicMock()
    snapshot.exists = True
    snapshot.to_dict.return_value = {"status": status}
    return snapshot


@pytest.mark.parametrize("status", ["pending_review", "ai_flagged"])
def test_review_transaction_updates_reviewable_submission(status):
    transaction, ref = MagicMock(), MagicMock()
    ref.get.return_value = _snapshot(status)
    update = {"status": "approved", "finalPoints": 90}

    review_submission_transaction.to_wrap(transaction, ref, update)

    transaction.update.assert_called_once_with(ref, update)


@pytest.mark.parametrize("status", ["approved", "rejected"])
def test_review_transaction_refuses_reviewed_submission(status):
    transaction, ref = MagicMock(), MagicMock()
    ref.get.return_value = _snapshot(status)

    with pytest.raises(SubmissionConflictError):
        review_submission_transaction.to_wrap(transaction, ref, {"status": "approved", "finalPoints": 10})

    transaction.update.assert_not_called()


def test_review_transaction_reports_missing_submission():
    transaction, ref = MagicMock(), MagicMock()
    ref.get.return_value.exists = False

    with pytest.raises(SubmissionNotFoundError):
        review_submission_transaction.to_wrap(transaction, ref, {})


def test_get_submission_parses_document():
    client = MagicMock()
    client.collection.return_value.document.return_value.get.return_value = _document()
    repository = SubmissionRepository(client)

    submission = repository.get_submission("sub-1")

    assert submission.id == "sub-1"
    assert submission.status == "ai_flagged"
    assert submission.aiVerification.flaggedIssues == ["blurry"]


def test_get_submission_missing_raises():
    client = MagicMock()
    client.collection.return_value.document.return_value.get.return_value.exists = False

    with pytest.raises(SubmissionNotFoundError):
        SubmissionRepository(client).get_submission("nope")


def test_append_history_is_idempotent():
    client = MagicMock()
    client.collection.return_value.document.return_value.create.side_effect = gcp_exceptions.AlreadyExists("exists")
    award = PointsAward(studentId="student-ana", submissionId="sub-1", actionType="recycling",
                        points=150, date=FIXED_NOW)

    assert SubmissionRepository(client).append_history(award) is False


class FakeQuery:
    """Evaluates field filters over a fixed set of documents, independent of the filter operator encoding."""

    def __init__(self, docs, filters=(), limit_to=None, descending_by=None):
        self.docs = docs
        self.filters = list(filters)
        self.limit_to = limit_to
        self.descending_by = descending_by
        self.streamed = []

    def where(self, filter):
        return FakeQuery(self.docs, self.filters + [filter], self.limit_to, self.descending_by)

    def order_by(self, field_path, direction=None):
        return FakeQuery(self.docs, self.filters, self.limit_to, field_path)

    def limit(self, count):
        return FakeQuery(self.docs, self.filters, count, self.descending_by)

    def _matches(self, doc):
        data = doc.to_dict()
        for field_filter in self.filters:
            value = data.get(field_filter.field_path)
            if isinstance(field_filter.value, list):
                if value not in field_filter.value:
                    return False
            elif value != field_filter.value:
                return False
        return True

    def stream(self):
        found = [doc for doc in self.docs if self._matches(doc)]
        if self.descending_by:
            found.sort(key=lambda doc: doc.to_dict()[self.descending_by], reverse=True)
        return found[:self.limit_to] if self.limit_to is not None else found

    def count(self):
        total = len(self.stream())
        return SimpleNamespace(get=lambda: [[SimpleNamespace(value=total)]])


def _repository_over(docs):
    client = MagicMock()
    client.collection.return_value = FakeQuery(docs)
    return SubmissionRepository(client)


def _classroom_docs():
    return [
        _document(status="pending_review", classroom=None, doc_id="sub-old",
                  submitted=FIXED_NOW - datetime.timedelta(days=1)),
        _document(status="ai_flagged", doc_id="sub-new"),
        _document(status="approved", doc_id="sub-done", submitted=FIXED_NOW - datetime.timedelta(hours=2)),
        _document(status="ai_flagged", classroom="class-9a", doc_id="sub-other"),
    ]


def test_list_by_filter_includes_unassigned_and_sorts_newest_first():
    repository = _repository_over(_classroom_docs())

    active = repository.list_by_filter(classroom_ids=["class-7b"], status="active")

    assert [s.id for s in active] == ["sub-new", "sub-old"]


def test_list_by_filter_applies_limit_across_scopes():
    repository = _repository_over(_classroom_docs())

    newest = repository.list_by_filter(classroom_ids=["class-7b"], limit=2)

    assert [s.id for s in newest] == ["sub-new", "sub-done"]


def test_list_by_filter_pushes_status_into_the_query(monkeypatch):
    repository = _repository_over(_classroom_docs())
    seen = []
    original = FakeQuery.where

    def recording_where(self, filter):
        seen.append((filter.field_path, filter.value))
        return original(self, filter)

    monkeypatch.setattr(FakeQuery, "where", recording_where)
    rejected = repository.list_by_filter(status="rejected")

    assert rejected == []
    assert seen == [("status", "rejected")]


def test_count_by_status_uses_scoped_aggregations():
    repository = _repository_over(_classroom_docs())

    assert repository.count_by_status(["class-7b"]) == {
        "all": 3, "ai_flagged": 1, "pending_review": 1, "reviewed": 1,
    }
    assert repository.count_by_status()["all"] == 4


def test_many_classrooms_are_split_into_bounded_queries():
    repository = _repository_over([])
    classroom_ids = [f"class-{n}" for n in range(40)]

    queries = repository._scope_queries(classroom_ids, statuses=frozenset({"ai_flagged", "pending_review"}))

    in_filters = [q.filters[-1].value for q in queries[1:]]
    assert queries[0].filters[-1].value is None
    assert all(len(chunk) * 2 <= 30 for chunk in in_filters)
    assert sum(len(chunk) for chunk in in_filters) == 40


def test_status_filter_values():
    assert status_filter_values(None) is None
    assert status_filter_values("all") is None
    assert status_filter_values("active") == {"pending_review", "ai_flagged"}
    assert status_filter_values("reviewed") == {"approved", "rejected"}
    assert status_filter_values("rejected") == {"rejected"}
    with pytest.raises(ValueError):
        status_filter_values("archived")
