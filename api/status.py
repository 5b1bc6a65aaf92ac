import datetime
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from models import db

status_bp = Blueprint('status_bp', __name__)

# --- Helper Check Functions ---

def check_firestore(workflow):
    """Checks that the submissions collection can be read."""
    try:
        workflow.repository.ping()
        return {"status": "OK", "details": "Successfully read from the submissions collection."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to connect to Firestore: {str(e)}"}

def check_database():
    """Checks that the points ledger database answers a trivial query."""
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "OK", "details": "Points ledger database is reachable."}
    except Exception as e:
        db.session.rollback()
        return {"status": "ERROR", "details": f"Failed to query the points ledger database: {str(e)}"}

def check_image_storage(workflow):
    """Checks that the evidence bucket is reachable; without one, photos are kept as thumbnails."""
    store = workflow.image_store
    if not store.configured:
        return {"status": "DEGRADED", "details": "No GCS_BUCKET_NAME configured. Evidence photos are stored as thumbnails."}
    try:
        store.ping()
        return {"status": "OK", "details": f"Successfully connected to bucket '{store.bucket_name}'."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to connect to GCS bucket '{store.bucket_name}': {str(e)}"}

def check_oracle(workflow):
    """Reports whether AI verification is configured; submissions still work without it."""
    if not workflow.oracle.configured:
        return {"status": "DEGRADED", "details": "No GEMINI_API_KEY configured. Submissions go to manual review."}
    return {"status": "OK", "details": f"Gemini model {workflow.oracle.model} configured."}

# --- Main Endpoint ---
@status_bp.route('/health')
def system_status():
    workflow = current_app.extensions['submission_workflow']
    checks = {
        "firestore": check_firestore(workflow),
        "database": check_database(),
        "oracle": check_oracle(workflow),
        "storage": check_image_storage(workflow),
    }
    healthy = all(result["status"] != "ERROR" for result in checks.values())
    return jsonify({
        "status": "OK" if healthy else "ERROR",
        "checks": checks,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }), 200 if healthy else 503
