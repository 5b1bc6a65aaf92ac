"""Root conftest for tests."""

import datetime
import os

import pytest

os.environ.setdefault("LOG_FILE_PATH", "/tmp/ecoaction_test.log")

from main import create_app
from models import Student, db
from points_ledger import PointsLedger
from schemas import Evidence, VerificationResult
from workflow import SubmissionWorkflow
from tests.fakes import FakeOracle, InMemorySubmissionRepository, RecordingNotifier

PNG_DATA_URI = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)
FIXED_NOW = datetime.datetime(2026, 3, 14, 9, 30, tzinfo=datetime.timezone.utc)


def verdict(verified=True, confidence=0.95, points=150, issues=None):
    return VerificationResult(
        verified=verified,
        confidence=confidence,
        reasoning="Photos show sorted recyclables at a collection point",
        suggestedPoints=points,
        flaggedIssues=issues or [],
    )


def make_evidence(**overrides):
    fields = {
        "actionType": "recycling",
        "description": "Sorted and recycled plastic bottles from the cafeteria",
        "location": "School cafeteria",
        "images": [PNG_DATA_URI],
    }
    fields.update(overrides)
    return Evidence(**fields)


@pytest.fixture
def oracle():
    return FakeOracle(verdict())


@pytest.fixture
def repository():
    return InMemorySubmissionRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def retries():
    return []


@pytest.fixture
def workflow(oracle, repository, notifier, retries):
    return SubmissionWorkflow(
        oracle=oracle,
        repository=repository,
        ledger=PointsLedger(db),
        notifier=notifier,
        schedule_award_retry=retries.append,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def app(tmp_path, workflow):
    app = create_app(
        config={
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ledger.db'}",
            "RATELIMIT_ENABLED": False,
        },
        workflow=workflow,
    )
    with app.app_context():
        db.session.add_all([
            Student(id="student-ana", name="Ana Lima", classroom_id="class-7b", eco_points=200),
            Student(id="student-ben", name="Ben Osei", classroom_id=None, eco_points=500),
            Student(id="student-cho", name="Cho Park", classroom_id="class-7b", eco_points=0),
        ])
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ledger(app):
    return PointsLedger(db)
