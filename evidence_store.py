"""
Storage for submitted evidence photos.

Photos are uploaded to a Cloud Storage bucket and the submission document keeps
only their gs:// references. Without a bucket, or when an upload fails, a small
inline thumbnail is kept instead so the document stays far below Firestore's
1 MiB limit.
"""

import base64
import logging
import uuid
from io import BytesIO
from typing import List, Optional, Union

from PIL import Image, UnidentifiedImageError

from gemini_service import MAX_IMAGE_EDGE, decode_image, shrink_image

logger = logging.getLogger(__name__)

EVIDENCE_PREFIX = 'action_evidence'
THUMBNAIL_EDGE = 256
# Largest inline entry kept when a payload can't be turned into a thumbnail.
INLINE_IMAGE_LIMIT = 64 * 1024
IMAGE_UNAVAILABLE = 'unavailable'


def thumbnail_data_uri(data: bytes) -> Optional[str]:
    """Renders a 256px WebP thumbnail as a data URI, or None if Pillow can't read the image."""
    try:
        with Image.open(BytesIO(data)) as img:
            if img.mode not in ('RGB', 'RGBA'):
                img = img.convert('RGB')
            img.thumbnail((THUMBNAIL_EDGE, THUMBNAIL_EDGE))
            output_buffer = BytesIO()
            img.save(output_buffer, format='WEBP', quality=85)
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not thumbnail evidence image: {e}")
        return None
    return "data:image/webp;base64," + base64.b64encode(output_buffer.getvalue()).decode('ascii')


class EvidenceImageStore:
    def __init__(self, storage_client=None, bucket_name: Optional[str] = None):
        self._bucket = storage_client.bucket(bucket_name) if storage_client and bucket_name else None
        self.bucket_name = bucket_name if self._bucket is not None else None

    @property
    def configured(self) -> bool:
        return self._bucket is not None

    def ping(self) -> None:
        if self._bucket is None:
            raise RuntimeError("No evidence bucket configured")
        if not self._bucket.exists():
            raise RuntimeError(f"Bucket '{self.bucket_name}' does not exist")

    def store(self, student_id: str, images: List[Union[bytes, str]]) -> List[str]:
        """
        Returns one stored reference per submitted image, in order. Never raises:
        a failed upload falls back to an inline thumbnail.
        """
        batch_id = uuid.uuid4().hex
        return [self._store_one(student_id, batch_id, index, image) for index, image in enumerate(images)]

    def _store_one(self, student_id, batch_id, index, image) -> str:
        try:
            data, mime_type = decode_image(image)
        except ValueError as e:
            logger.warning(f"Evidence image {index} from {student_id} could not be decoded: {e}")
            return IMAGE_UNAVAILABLE

        if self._bucket is not None:
            data_to_upload, upload_mime = shrink_image(data, mime_type, MAX_IMAGE_EDGE)
            blob_path = f"{EVIDENCE_PREFIX}/{student_id}/{batch_id}/{index}"
            try:
                blob = self._bucket.blob(blob_path)
                blob.upload_from_string(data_to_upload, content_type=upload_mime)
                return f"gs://{self.bucket_name}/{blob_path}"
            except Exception as e:
                logger.error(f"Upload of evidence image {blob_path} failed, keeping a thumbnail inline: {e}",
                             exc_info=True)

        return self._inline(data, mime_type)

    @staticmethod
    def _inline(data: bytes, mime_type: str) -> str:
        thumbnail = thumbnail_data_uri(data)
        if thumbnail is not None:
            return thumbnail
        if len(data) * 4 // 3 <= INLINE_IMAGE_LIMIT:
            return f"data:{mime_type};base64," + base64.b64encode(data).decode('ascii')
        logger.warning(f"Dropping unreadable {mime_type} evidence image of {len(data)} bytes")
        return IMAGE_UNAVAILABLE
