import logging
from flask import Blueprint, request, jsonify, current_app

from extensions import limiter, submit_rate_limit
from .pydantic_models import (SubmitActionRequest, ReviewActionRequest, SubmitActionResponse,
                              ReviewActionResponse, AIVerificationSummary)
from .error_utils import bad_request_error

submissions_bp = Blueprint('submissions_bp', __name__)


def get_workflow():
    return current_app.extensions['submission_workflow']


def _serialize(submission):
    data = submission.model_dump(mode='json')
    data['_id'] = data.pop('id')
    return data


def _classroom_ids_from_args():
    ids = []
    if request.args.get('classroomIds'):
        ids.extend(cid.strip() for cid in request.args['classroomIds'].split(',') if cid.strip())
    if request.args.get('classroomId'):
        ids.append(request.args['classroomId'].strip())
    return ids or None


@submissions_bp.route('/verify-action', methods=['POST'])
@limiter.limit(submit_rate_limit)
def verify_action():
    """
    Accepts eco-action evidence, runs AI verification and stores the decision.
    Always answers with a definite status, even when the verifier is down.
    """
    req_data = SubmitActionRequest.model_validate(request.get_json(silent=True) or {})
    outcome = get_workflow().submit(req_data.studentId, req_data.to_evidence())

    response = SubmitActionResponse(
        submissionId=outcome.submissionId,
        status=outcome.status.value,
        autoApproved=outcome.autoApproved,
        pointsAwarded=outcome.pointsAwarded,
        awardPending=outcome.awardPending,
        aiVerification=AIVerificationSummary(
            message=outcome.message,
            confidence=outcome.aiVerification.confidence,
            suggestedPoints=outcome.aiVerification.suggestedPoints,
            flaggedIssues=outcome.aiVerification.flaggedIssues,
        ),
    )
    status_code = 202 if outcome.awardPending else 200
    return jsonify(response.model_dump()), status_code


@submissions_bp.route('/review-action', methods=['POST'])
def review_action():
    req_data = ReviewActionRequest.model_validate(request.get_json(silent=True) or {})
    outcome = get_workflow().review(
        req_data.submissionId,
        req_data.action,
        req_data.teacherId,
        points=req_data.points,
        notes=req_data.teacherNotes or '',
    )
    response = ReviewActionResponse(
        submissionId=outcome.submissionId,
        action=outcome.action.value,
        status=outcome.status.value,
        finalPoints=outcome.finalPoints,
        awardPending=outcome.awardPending,
        message=outcome.message,
    )
    return jsonify(response.model_dump()), 200


@submissions_bp.route('/submissions', methods=['GET'])
def list_submissions():
    classroom_ids = _classroom_ids_from_args()
    status = request.args.get('status')
    workflow = get_workflow()
    try:
        submissions = workflow.list_submissions(classroom_ids=classroom_ids, status=status)
    except ValueError:
        return bad_request_error(f"Unknown status filter: {status}")

    body = {"success": True, "submissions": [_serialize(s) for s in submissions]}
    if classroom_ids is not None:
        body["counts"] = workflow.count_submissions(classroom_ids)
    return jsonify(body), 200


@submissions_bp.route('/student-submissions', methods=['GET'])
def list_student_submissions():
    student_id = request.args.get('studentId')
    if not student_id:
        return bad_request_error("Student ID is required")
    submissions = get_workflow().list_student_submissions(student_id)
    logging.info(f"Returning {len(submissions)} submissions for student {student_id}")
    return jsonify({"success": True, "submissions": [_serialize(s) for s in submissions]}), 200
