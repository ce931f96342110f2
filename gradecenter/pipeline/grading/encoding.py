"""Document encoding for inline transport to the text-generation service.

This module converts caller-supplied document handles into inline payloads
(media type plus base64 text). It performs only file I/O and does not contact
external services.
"""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from gradecenter.exceptions import EncodingError
from gradecenter.pipeline.models import DocumentHandle

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class InlinePayload:
    """Transport form of a document: media type and base64-encoded bytes."""

    media_type: str
    data: str

    def as_part(self) -> dict[str, dict[str, str]]:
        """Return the ``inline_data`` request part for this payload."""
        return {"inline_data": {"mime_type": self.media_type, "data": self.data}}


def resolve_media_type(handle: DocumentHandle) -> str:
    """Return the media type of ``handle``.

    Parameters
    ----------
    handle : DocumentHandle
        Document whose type is needed.

    Returns
    -------
    str
        The explicit media type, else the one guessed from the file name,
        else ``application/octet-stream``.

    Examples
    --------
    >>> resolve_media_type(DocumentHandle(name="scan.png"))
    'image/png'
    """
    if handle.media_type:
        return handle.media_type
    guessed, _ = mimetypes.guess_type(handle.name)
    return guessed or DEFAULT_MEDIA_TYPE


def encode_document(handle: DocumentHandle) -> InlinePayload:
    """Convert a document handle into an inline payload.

    Parameters
    ----------
    handle : DocumentHandle
        The document to encode.

    Returns
    -------
    InlinePayload
        Media type and base64 text of the document bytes.

    Raises
    ------
    EncodingError
        If the handle carries no content or its file cannot be read.
    """
    if handle.data is not None:
        raw = handle.data
    elif handle.path is not None:
        try:
            raw = Path(handle.path).read_bytes()
        except OSError as exc:
            raise EncodingError(
                f"Could not read document '{handle.name}': {exc.strerror or exc}",
                context={"document": handle.name, "path": str(handle.path)},
            ) from exc
    else:
        raise EncodingError(
            f"Document '{handle.name}' has no content",
            context={"document": handle.name},
        )
    return InlinePayload(
        media_type=resolve_media_type(handle),
        data=base64.b64encode(raw).decode("ascii"),
    )


def encode_documents(handles: Iterable[DocumentHandle]) -> list[InlinePayload]:
    """Encode several documents, preserving their order."""
    return [encode_document(handle) for handle in handles]
