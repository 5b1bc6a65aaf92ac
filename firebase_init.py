"""
Firebase Admin setup shared by the web app and the Celery workers.
Submissions, history entries and notifications all live in Firestore.
"""

import logging
import os
import firebase_admin
from firebase_admin import credentials, firestore as admin_firestore

_firebase_initialized = False


def initialize_firebase():
    """
    Initializes the default Firebase app from application default credentials
    (GOOGLE_APPLICATION_CREDENTIALS). GCP_PROJECT_ID, when set, pins the project.

    Returns:
        bool: True if the default app is ready, False otherwise
    """
    global _firebase_initialized

    if _firebase_initialized:
        return True

    try:
        if not firebase_admin._apps:
            project_id = os.environ.get("GCP_PROJECT_ID")
            options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(credentials.ApplicationDefault(), options)
            logging.info(f"Firebase Admin SDK initialized (project: {project_id or 'from credentials'}).")
        _firebase_initialized = True
        return True

    except Exception as e:
        logging.error(f"Failed to initialize Firebase Admin SDK: {e}")
        return False


def get_firestore_client():
    """Returns the Firestore client bound to the default Firebase app."""
    if not initialize_firebase():
        raise RuntimeError("Firebase Admin SDK is not initialized; check GOOGLE_APPLICATION_CREDENTIALS")
    return admin_firestore.client()
