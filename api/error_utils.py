"""
Standardized error responses for the eco-action API.
Every failure body carries success=False, an error_code from ERROR_CODES and a message.
"""

import logging
from flask import jsonify
from typing import Any, Optional

ERROR_CODES = {
    # Client errors
    "NOT_FOUND": "Resource not found",
    "STUDENT_NOT_FOUND": "Student not found",
    "SUBMISSION_NOT_FOUND": "Submission not found",
    "REVIEW_CONFLICT": "Submission is not in a reviewable state",
    "BAD_REQUEST": "Invalid request body",
    "INVALID_REQUEST": "Invalid request body or parameters",
    "RATE_LIMITED": "Too many requests",
    "PAYLOAD_TOO_LARGE": "Request body is too large",

    # Server errors
    "SERVER_ERROR": "Internal server error",
    "DATABASE_ERROR": "Points ledger unavailable",
}


def create_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Any] = None,
    status_code: int = 500
) -> tuple:
    """
    Create a standardized error response.

    Args:
        error_code: One of the ERROR_CODES keys
        message: Optional custom message (defaults to the standard message)
        details: Optional structured details, e.g. field validation errors
        status_code: HTTP status code

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    if error_code not in ERROR_CODES:
        logging.warning(f"Unknown error code used: {error_code}")
        error_code = "SERVER_ERROR"

    error_message = message or ERROR_CODES[error_code]
    response_data = {
        "success": False,
        "error_code": error_code,
        "message": error_message
    }
    if details:
        response_data["details"] = details

    log = logging.error if status_code >= 500 else logging.warning
    log(f"API Error [{error_code}]: {error_message} - Status: {status_code}")

    return jsonify(response_data), status_code


def handle_exception(e: Exception, context: str = "API endpoint") -> tuple:
    """Logs an unexpected exception with its traceback and answers with a generic 500."""
    logging.critical(f"Unexpected error in {context}: {type(e).__name__} - {e}", exc_info=True)
    return create_error_response("SERVER_ERROR", "An unexpected error occurred on the server.", status_code=500)


def not_found_error(message: Optional[str] = None) -> tuple:
    return create_error_response("NOT_FOUND", message, status_code=404)

def bad_request_error(message: Optional[str] = None, details: Optional[Any] = None) -> tuple:
    return create_error_response("INVALID_REQUEST", message, details, status_code=400)
