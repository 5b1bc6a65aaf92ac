import os
from celery import Celery
from dotenv import load_dotenv

# --- CELERY WORKER INITIALIZATION ---

# 1. Load environment variables. This MUST happen before anything else.
load_dotenv()

# 2. Create the Celery app instance.
celery_app = Celery('tasks',
                    broker=os.environ.get('CELERY_BROKER_URL', os.environ.get('REDIS_URL', 'redis://localhost:6379/0')),
                    include=['tasks']) # This tells Celery to look for tasks in tasks.py

celery_app.conf.update(
    task_track_started=True,
    beat_schedule={
        'reconcile-point-awards': {
            'task': 'reconcile_point_awards',
            'schedule': 600.0,
        },
        'update-student-ranks': {
            'task': 'update_all_student_ranks',
            'schedule': 3600.0,
        },
    },
)
