"""Tests for document encoding into inline payloads."""

import base64
from pathlib import Path

import pytest

from gradecenter.exceptions import EncodingError
from gradecenter.pipeline.grading.encoding import (
    DEFAULT_MEDIA_TYPE,
    encode_document,
    encode_documents,
    resolve_media_type,
)
from gradecenter.pipeline.models import DocumentHandle


def test_encode_in_memory_document():
    payload = encode_document(DocumentHandle(name="answer.png", data=b"abc"))
    assert payload.media_type == "image/png"
    assert base64.b64decode(payload.data) == b"abc"
    assert payload.as_part() == {
        "inline_data": {"mime_type": "image/png", "data": payload.data}
    }


def test_encode_file_on_disk(tmp_path: Path):
    path = tmp_path / "exam.pdf"
    path.write_bytes(b"%PDF-1.7")
    payload = encode_document(DocumentHandle.from_path(path))
    assert payload.media_type == "application/pdf"
    assert base64.b64decode(payload.data) == b"%PDF-1.7"


def test_explicit_media_type_wins():
    handle = DocumentHandle(name="scan", data=b"x", media_type="image/jpeg")
    assert resolve_media_type(handle) == "image/jpeg"
    assert resolve_media_type(DocumentHandle(name="noext")) == DEFAULT_MEDIA_TYPE


def test_unreadable_file_raises(tmp_path: Path):
    with pytest.raises(EncodingError) as info:
        encode_document(DocumentHandle.from_path(tmp_path / "missing.pdf"))
    assert "missing.pdf" in info.value.message
    assert info.value.code == "ENCODING_ERROR"


def test_handle_without_content_raises():
    with pytest.raises(EncodingError):
        encode_document(DocumentHandle(name="empty.pdf"))


def test_encode_documents_preserves_order():
    handles = [DocumentHandle(name=f"{i}.txt", data=str(i).encode()) for i in range(3)]
    decoded = [base64.b64decode(p.data) for p in encode_documents(handles)]
    assert decoded == [b"0", b"1", b"2"]
