"""
Dependency wiring for the eco-action backend.
Settings come from the environment (and .env); the workflow and its
collaborators are constructed explicitly here and injected, never at import time.
"""

import logging
import os
from dotenv import load_dotenv
from google.cloud import storage

from firebase_init import get_firestore_client
from evidence_store import EvidenceImageStore
from gemini_service import GeminiVerifier
from models import db
from notification_service import NotificationSink
from points_ledger import PointsLedger
from submission_repository import SubmissionRepository
from workflow import SubmissionWorkflow

load_dotenv()

# --- Environment variables ---
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
ORACLE_TIMEOUT_MS = int(os.environ.get("ORACLE_TIMEOUT_MS", "30000"))
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///ecoaction.db")
GCS_BUCKET_NAME = os.environ.get("GCS_BUCKET_NAME")
REDIS_URL = os.environ.get("REDIS_URL")
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", REDIS_URL or "redis://localhost:6379/0")


def schedule_award_retry(submission_id):
    """Queues a Celery retry for a ledger award that failed during a request."""
    from tasks import retry_point_award  # Local import to avoid circular dependencies
    retry_point_award.delay(submission_id)


def build_workflow(firestore_client=None, retry_hook=schedule_award_retry):
    """Builds the submission workflow against Firestore, the SQL ledger and Gemini."""
    client = firestore_client or get_firestore_client()
    if GCS_BUCKET_NAME:
        image_store = EvidenceImageStore(storage.Client(), GCS_BUCKET_NAME)
    else:
        logging.warning("GCS_BUCKET_NAME is not set; evidence photos are kept as inline thumbnails only.")
        image_store = EvidenceImageStore()
    if not GEMINI_API_KEY:
        logging.warning("GEMINI_API_KEY is not set; every submission will be routed to manual review.")

    return SubmissionWorkflow(
        oracle=GeminiVerifier(GEMINI_API_KEY, model=GEMINI_MODEL, timeout_ms=ORACLE_TIMEOUT_MS),
        repository=SubmissionRepository(client),
        ledger=PointsLedger(db),
        notifier=NotificationSink(client),
        image_store=image_store,
        schedule_award_retry=retry_hook,
    )
