import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Reviewer identity recorded on submissions approved without a human.
AUTO_APPROVE_REVIEWER = "AI_AUTO_APPROVE"


class SubmissionStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    AI_FLAGGED = "ai_flagged"
    APPROVED = "approved"
    REJECTED = "rejected"


REVIEWABLE_STATUSES = frozenset({SubmissionStatus.PENDING_REVIEW.value, SubmissionStatus.AI_FLAGGED.value})
REVIEWED_STATUSES = frozenset({SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value})


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class NotificationType(str, Enum):
    ACTION_REVIEW_NEEDED = "action_review_needed"
    ACTION_APPROVED = "action_approved"
    ACTION_REJECTED = "action_rejected"


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = "No reasoning provided"
    suggestedPoints: int = Field(default=100, ge=0)
    flaggedIssues: List[str] = []


class Evidence(BaseModel):
    """Everything the verifier sees about one eco-action."""
    actionType: str
    description: str
    location: Optional[str] = None
    date: Optional[str] = None
    estimatedImpact: Optional[str] = None
    images: List[Union[bytes, str]] = Field(min_length=1)


class Submission(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: Optional[str] = None
    studentId: str
    studentName: str = "Unknown"
    classroomId: Optional[str] = None
    actionType: str
    description: str
    location: Optional[str] = None
    date: Optional[str] = None
    estimatedImpact: Optional[str] = None
    # gs:// references or inline thumbnails, one per submitted image.
    images: List[str] = Field(min_length=1)
    status: SubmissionStatus
    autoApproved: bool = False
    aiVerification: VerificationResult
    submittedAt: datetime.datetime
    reviewedAt: Optional[datetime.datetime] = None
    reviewedBy: Optional[str] = None
    teacherNotes: str = ""
    finalPoints: int = 0
    # True once the ledger award and history entry for an approval exist.
    pointsSynced: bool = False

    def to_document(self) -> dict:
        """Serializes the submission for the document store (id is the document key)."""
        return self.model_dump(exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Submission":
        return cls.model_validate({**data, "id": doc_id})


class PointsAward(BaseModel):
    """Immutable history entry written once per approval event."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    studentId: str
    submissionId: str
    actionType: str
    points: int
    status: SubmissionStatus = SubmissionStatus.APPROVED
    date: datetime.datetime


class Notification(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: NotificationType
    message: str
    submissionId: str
    classroomId: Optional[str] = None
    studentId: Optional[str] = None
    studentName: Optional[str] = None
    read: bool = False
    createdAt: datetime.datetime


class StudentRecord(BaseModel):
    """Read-only view of a student row in the points ledger."""
    studentId: str
    name: str
    classroomId: Optional[str] = None
    ecoPoints: int = 0
    completedTasks: int = 0
    rank: Optional[int] = None


class AwardResult(BaseModel):
    newTotal: int
    newRank: int
    pointsAwarded: int
    duplicate: bool = False
