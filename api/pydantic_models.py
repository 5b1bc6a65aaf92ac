from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional

from gemini_service import decode_image
from schemas import AUTO_APPROVE_REVIEWER, Evidence, ReviewAction
from .sanitization import (sanitize_string, sanitize_optional, DESCRIPTION_MAX_LENGTH,
                           SHORT_TEXT_MAX_LENGTH, NOTES_MAX_LENGTH)

# One request carries at most this many photos, each at most ~7.5 MB once decoded.
MAX_SUBMISSION_IMAGES = 10
MAX_IMAGE_PAYLOAD_CHARS = 10 * 1024 * 1024


# --- SUBMISSION ---
class SubmitActionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    studentId: str = Field(min_length=1)
    actionType: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: Optional[str] = None
    date: Optional[str] = None
    estimatedImpact: Optional[str] = None
    images: List[str] = Field(min_length=1, max_length=MAX_SUBMISSION_IMAGES)  # data URIs or bare base64

    @field_validator('actionType')
    @classmethod
    def _clean_action_type(cls, value):
        return sanitize_string(value, SHORT_TEXT_MAX_LENGTH)

    @field_validator('description')
    @classmethod
    def _clean_description(cls, value):
        return sanitize_string(value, DESCRIPTION_MAX_LENGTH)

    @field_validator('location', 'date', 'estimatedImpact')
    @classmethod
    def _clean_optional(cls, value):
        return sanitize_optional(value)

    @field_validator('images')
    @classmethod
    def _check_images(cls, value):
        for index, image in enumerate(value):
            if not image:
                raise ValueError("images must not contain empty entries")
            if len(image) > MAX_IMAGE_PAYLOAD_CHARS:
                raise ValueError(f"image {index} is larger than {MAX_IMAGE_PAYLOAD_CHARS} characters")
            try:
                decode_image(image)
            except ValueError as e:
                raise ValueError(f"image {index} is not valid base64") from e
        return value

    def to_evidence(self) -> Evidence:
        return Evidence(**self.model_dump(exclude={'studentId'}))


# --- REVIEW ---
class ReviewActionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    submissionId: str = Field(min_length=1)
    action: ReviewAction
    points: Optional[int] = Field(default=None, ge=0)
    teacherId: str = Field(min_length=1)
    teacherNotes: Optional[str] = None

    @field_validator('teacherId')
    @classmethod
    def _human_reviewer(cls, value):
        if value == AUTO_APPROVE_REVIEWER:
            raise ValueError(f"'{AUTO_APPROVE_REVIEWER}' is reserved for automatic approvals")
        return value

    @field_validator('teacherNotes')
    @classmethod
    def _clean_notes(cls, value):
        return sanitize_string(value, NOTES_MAX_LENGTH) if value else ''

    @model_validator(mode='after')
    def _points_required_for_approval(self):
        if self.action is ReviewAction.APPROVE and self.points is None:
            raise ValueError("points are required when approving")
        return self


# --- RESPONSES ---
class AIVerificationSummary(BaseModel):
    message: str
    confidence: float
    suggestedPoints: int
    flaggedIssues: List[str] = []


class SubmitActionResponse(BaseModel):
    success: bool = True
    submissionId: str
    status: str
    autoApproved: bool
    pointsAwarded: bool
    awardPending: bool
    aiVerification: AIVerificationSummary


class ReviewActionResponse(BaseModel):
    success: bool = True
    submissionId: str
    action: str
    status: str
    finalPoints: int
    awardPending: bool
    message: str
