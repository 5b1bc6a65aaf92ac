import base64
import binascii
import json
import logging
import re
from io import BytesIO
from typing import List, Optional, Tuple, Union

from google import genai
from google.genai import types
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ValidationError

from schemas import Evidence, VerificationResult

logger = logging.getLogger(__name__)

MAX_IMAGES = 3
DEFAULT_IMAGE_MIME = "image/jpeg"
MAX_IMAGE_EDGE = 1024

FALLBACK_POINTS = 100
ISSUE_NOT_CONFIGURED = "API key not configured"
ISSUE_ORACLE_ERROR = "AI verification error"
ISSUE_MALFORMED = "Malformed AI response"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)

SYSTEM_PROMPT = """You are an eco-action verification AI for a school sustainability programme. Students upload photos and a short description of something they did for the environment. Judge whether the photos plausibly show the described action.

<protocol>
1. Check that the images show the action type and description the student gave. Stock photos, screenshots or unrelated scenes are not evidence.
2. Check for signs of fabrication or reuse: watermarks, inconsistent scenes between images, or images that contradict the stated location or date.
3. Estimate how confident you are that the action really happened as described, from 0.0 (no evidence) to 1.0 (certain).
4. Suggest a point award for the action. A typical single action is worth 50-200 points; larger community actions may be worth more.
5. List every concern you have as a short string in flaggedIssues. Use an empty list if there are none.
</protocol>

Respond with ONLY a valid JSON object with exactly these keys:
{
  "verified": <boolean>,
  "confidence": <number between 0.0 and 1.0>,
  "reasoning": <short string>,
  "suggestedPoints": <non-negative integer>,
  "flaggedIssues": [<string>, ...]
}"""


class OracleVerdict(BaseModel):
    verified: bool
    confidence: float
    reasoning: str
    suggestedPoints: int
    flaggedIssues: List[str]


def fallback_result(cause: str, reasoning: str = "AI verification failed. Requires manual review.") -> VerificationResult:
    """The conservative verdict used whenever the oracle cannot give a usable answer."""
    return VerificationResult(
        verified=False,
        confidence=0.0,
        reasoning=reasoning,
        suggestedPoints=FALLBACK_POINTS,
        flaggedIssues=[cause],
    )


def decode_image(image: Union[bytes, str]) -> Tuple[bytes, str]:
    """
    Decodes one submitted image into (raw bytes, media type).
    Accepts raw bytes, a data URI, or a bare base64 string.
    """
    if isinstance(image, (bytes, bytearray)):
        return bytes(image), DEFAULT_IMAGE_MIME

    mime_type = DEFAULT_IMAGE_MIME
    payload = image.strip()
    match = _DATA_URI_RE.match(payload)
    if match:
        mime_type = match.group("mime") or DEFAULT_IMAGE_MIME
        payload = match.group("data")
    elif "," in payload:
        payload = payload.split(",", 1)[1]

    try:
        return base64.b64decode(payload, validate=False), mime_type
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image is not valid base64: {e}") from e


def shrink_image(data: bytes, mime_type: str, max_edge: int = MAX_IMAGE_EDGE) -> Tuple[bytes, str]:
    """Downscales large photos before upload; anything Pillow can't read is passed through."""
    try:
        with Image.open(BytesIO(data)) as img:
            if max(img.size) <= max_edge:
                return data, mime_type
            if img.mode in ('RGBA', 'LA', 'P'):
                img = img.convert('RGB')
            img.thumbnail((max_edge, max_edge))
            output_buffer = BytesIO()
            img.save(output_buffer, "JPEG", quality=85)
            return output_buffer.getvalue(), "image/jpeg"
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Sending image unchanged, Pillow could not process it: {e}")
        return data, mime_type


def strip_fences(text: str) -> str:
    """Removes markdown code fences the model sometimes wraps around its JSON."""
    return _FENCE_RE.sub("", text).strip()


def parse_verdict(text: Optional[str]) -> Optional[VerificationResult]:
    """Returns the decoded verdict, or None if the payload is not the expected shape."""
    if not text:
        return None
    try:
        raw = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response as JSON: {e}")
        logger.error(f"Raw response: {text}")
        return None
    if not isinstance(raw, dict):
        logger.error(f"AI response is not a JSON object: {text}")
        return None

    fields = {key: value for key, value in raw.items() if key in VerificationResult.model_fields and value is not None}
    if not fields.get("reasoning"):
        fields.pop("reasoning", None)
    try:
        return VerificationResult.model_validate(fields)
    except ValidationError as e:
        logger.error(f"AI response failed validation: {e}")
        return None


class GeminiVerifier:
    """
    Wraps one Gemini call per submission.

    verify() never raises: a missing key, a transport failure or an
    unreadable answer all degrade to fallback_result(), which routes the
    submission to manual review.
    """

    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash",
                 timeout_ms: int = 30000, client=None):
        self.model = model
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=timeout_ms),
            )

    @property
    def configured(self) -> bool:
        return self._client is not None

    def verify(self, evidence: Evidence) -> VerificationResult:
        if not self.configured:
            logger.warning("GEMINI_API_KEY not found, skipping AI verification")
            return fallback_result(ISSUE_NOT_CONFIGURED, "AI verification unavailable. Requires manual review.")

        try:
            contents = self._build_contents(evidence)
            response = self._client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    response_mime_type="application/json",
                    response_schema=OracleVerdict,
                    temperature=0.1,
                ))
        except Exception as e:
            logger.error(f"Error verifying {evidence.actionType} action with AI: {str(e)}")
            return fallback_result(ISSUE_ORACLE_ERROR)

        result = parse_verdict(getattr(response, "text", None))
        if result is None:
            return fallback_result(ISSUE_MALFORMED)

        logger.info(f"AI verification result: verified={result.verified} confidence={result.confidence} "
                    f"suggestedPoints={result.suggestedPoints}")
        return result

    def _build_contents(self, evidence: Evidence) -> list:
        if len(evidence.images) > MAX_IMAGES:
            logger.info(f"Only the first {MAX_IMAGES} of {len(evidence.images)} images are sent for verification")

        content_parts = []
        for image in evidence.images[:MAX_IMAGES]:
            data, mime_type = shrink_image(*decode_image(image))
            content_parts.append(types.Part.from_bytes(data=data, mime_type=mime_type))

        content_parts.append(
            f"Action Type: {evidence.actionType}\n"
            f"Description: {evidence.description}\n"
            f"Location: {evidence.location or 'Not provided'}\n"
            f"Date: {evidence.date or 'Not provided'}\n"
            f"Impact: {evidence.estimatedImpact or 'Not provided'}\n\n"
            "Verify this eco-action according to the protocol."
        )
        return content_parts
