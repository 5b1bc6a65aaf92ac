from typing import NamedTuple

from schemas import SubmissionStatus, VerificationResult

AUTO_APPROVE_CONFIDENCE = 0.90
FLAG_CONFIDENCE = 0.70


class Decision(NamedTuple):
    status: SubmissionStatus
    auto_approved: bool
    award_points: int


def decide(result: VerificationResult) -> Decision:
    """
    Maps a verifier verdict onto the submission's initial status.

    Both thresholds are strict: exactly 0.90 is not auto-approved and
    exactly 0.70 is still flagged.
    """
    if result.confidence > AUTO_APPROVE_CONFIDENCE and result.verified:
        return Decision(SubmissionStatus.APPROVED, True, result.suggestedPoints)
    if not result.verified or result.confidence <= FLAG_CONFIDENCE:
        return Decision(SubmissionStatus.AI_FLAGGED, False, 0)
    return Decision(SubmissionStatus.PENDING_REVIEW, False, 0)
