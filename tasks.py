# FILE: ecoaction-backend/tasks.py

import logging
from celery.exceptions import MaxRetriesExceededError

from celery_worker import celery_app
from logging_config import setup_logging
from models import db
from points_ledger import PointsLedger

# --- SETUP & CONFIG ---
setup_logging()

# --- LAZY INITIALIZED APP ---
_flask_app = None
def get_flask_app():
    """The worker reuses the web app's wiring so tasks see the same stores."""
    global _flask_app
    if _flask_app is None:
        from main import create_app  # Local import to avoid circular dependencies
        _flask_app = create_app()
    return _flask_app


@celery_app.task(name="retry_point_award", bind=True, max_retries=5, default_retry_delay=60)
def retry_point_award(self, submission_id):
    """Replays the ledger award for one approved submission after a failed attempt."""
    app = get_flask_app()
    with app.app_context():
        workflow = app.extensions['submission_workflow']
        if workflow.retry_award(submission_id):
            logging.info(f"Award for submission {submission_id} is in sync")
            return True
    try:
        raise self.retry()
    except MaxRetriesExceededError:
        logging.error(f"Giving up retrying award for submission {submission_id}; "
                      f"the reconciliation sweep will replay it")
        return False


@celery_app.task(name="reconcile_point_awards")
def reconcile_point_awards(limit=100):
    """Periodic sweep for approved submissions whose ledger award never landed."""
    app = get_flask_app()
    with app.app_context():
        return app.extensions['submission_workflow'].reconcile_awards(limit)


@celery_app.task(name="update_all_student_ranks")
def update_all_student_ranks():
    """Recomputes every student's rank from their current point total."""
    logging.info("Starting the student rank update process...")
    app = get_flask_app()
    with app.app_context():
        return PointsLedger(db).recompute_ranks()
