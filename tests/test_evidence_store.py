"""Tests for evidence photo storage: bucket uploads and inline thumbnails."""

import base64
import json
import os
from io import BytesIO
from unittest.mock import MagicMock

import pytest
from PIL import Image

from evidence_store import (IMAGE_UNAVAILABLE, INLINE_IMAGE_LIMIT, THUMBNAIL_EDGE, EvidenceImageStore)
from gemini_service import MAX_IMAGE_EDGE
from tests.conftest import make_evidence

FIRESTORE_DOCUMENT_LIMIT = 1024 * 1024


def _phone_photo_uri(size=(3000, 2000)):
    """A noisy JPEG, which compresses about as badly as a real camera photo."""
    img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buffer = BytesIO()
    img.save(buffer, "JPEG", quality=95)
    return "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode()


@pytest.fixture(scope="module")
def phone_photo():
    return _phone_photo_uri()


def _decode_data_uri(uri):
    return base64.b64decode(uri.split(",", 1)[1])


def test_without_bucket_photos_become_small_thumbnails(phone_photo):
    assert len(phone_photo) > FIRESTORE_DOCUMENT_LIMIT

    stored = EvidenceImageStore().store("student-ana", [phone_photo])

    assert len(stored) == 1
    assert stored[0].startswith("data:image/webp;base64,")
    with Image.open(BytesIO(_decode_data_uri(stored[0]))) as img:
        assert max(img.size) == THUMBNAIL_EDGE


def test_bucket_upload_stores_only_a_reference(phone_photo):
    storage_client = MagicMock()
    bucket = storage_client.bucket.return_value
    store = EvidenceImageStore(storage_client, "eco-evidence")

    stored = store.store("student-ana", [phone_photo, phone_photo])

    storage_client.bucket.assert_called_once_with("eco-evidence")
    assert all(ref.startswith("gs://eco-evidence/action_evidence/student-ana/") for ref in stored)
    assert stored[0].endswith("/0") and stored[1].endswith("/1")
    uploaded, = bucket.blob.return_value.upload_from_string.call_args_list[:1]
    assert uploaded.kwargs["content_type"] == "image/jpeg"
    with Image.open(BytesIO(uploaded.args[0])) as img:
        assert max(img.size) == MAX_IMAGE_EDGE


def test_failed_upload_falls_back_to_thumbnail(phone_photo):
    storage_client = MagicMock()
    storage_client.bucket.return_value.blob.return_value.upload_from_string.side_effect = ConnectionError("gcs down")

    stored = EvidenceImageStore(storage_client, "eco-evidence").store("student-ana", [phone_photo])

    assert stored[0].startswith("data:image/webp;base64,")


def test_unreadable_payloads_are_kept_only_when_small():
    small = base64.b64encode(b"heic-bytes").decode()
    large = base64.b64encode(b"\x00" * INLINE_IMAGE_LIMIT).decode()

    stored = EvidenceImageStore().store("student-ana", [small, large, "abc"])

    assert stored[0] == "data:image/jpeg;base64," + small
    assert stored[1] == IMAGE_UNAVAILABLE
    assert stored[2] == IMAGE_UNAVAILABLE


def test_large_photo_submission_fits_in_one_document(app, workflow, repository, phone_photo):
    outcome = workflow.submit("student-ana", make_evidence(images=[phone_photo] * 3))

    document = repository.get_submission(outcome.submissionId).to_document()
    assert len(document["images"]) == 3
    assert len(json.dumps(document, default=str)) < FIRESTORE_DOCUMENT_LIMIT


def test_bucket_ping_reports_missing_bucket():
    storage_client = MagicMock()
    storage_client.bucket.return_value.exists.return_value = False
    store = EvidenceImageStore(storage_client, "eco-evidence")

    assert store.configured is True
    with pytest.raises(RuntimeError):
        store.ping()
    with pytest.raises(RuntimeError):
        EvidenceImageStore().ping()
