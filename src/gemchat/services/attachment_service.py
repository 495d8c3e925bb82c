"""
Image attachment encoding for outgoing chat messages.

Attachments travel through the session layer as data-URIs
(``data:<mime>;base64,<payload>``). This module turns files picked by a
front end into that form and splits data-URIs back into MIME type and raw
payload for the generation client.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

_DATA_URI_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class AttachmentService:
    """
    Encode user supplied image files as data-URIs.

    A file that cannot be read or is not an image is skipped; the remaining
    files of the same batch are still encoded.
    """

    _MIME_BY_EXTENSION = {
        "png": "image/png",
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "gif": "image/gif",
        "webp": "image/webp",
        "heic": "image/heic",
        "heif": "image/heif",
    }

    def __init__(self, max_bytes: int = 20 * 1024 * 1024) -> None:
        """
        Args:
            max_bytes: Files larger than this are skipped.
        """
        self._max_bytes = max(max_bytes, 0)

    def encode_files(self, paths: Iterable[Union[str, Path]]) -> List[str]:
        """
        Encode every readable image file as a data-URI, in input order.

        Args:
            paths: Candidate image files.

        Returns:
            Data-URIs of the files that could be encoded.
        """
        encoded: List[str] = []
        for raw_path in paths:
            data_uri = self.encode_file(raw_path)
            if data_uri is not None:
                encoded.append(data_uri)
        return encoded

    def encode_file(self, raw_path: Union[str, Path]) -> Optional[str]:
        path = Path(raw_path).expanduser()
        mime_type = self._mime_for_extension(path.suffix.lstrip("."))
        if mime_type is None:
            logger.warning("Skipping attachment %s: not a supported image type.", path)
            return None

        try:
            size = path.stat().st_size
            if self._max_bytes and size > self._max_bytes:
                logger.warning("Skipping attachment %s: %d bytes exceeds limit.", path, size)
                return None
            image_bytes = path.read_bytes()
        except OSError as exc:
            logger.warning("Skipping attachment %s: %s", path, exc)
            return None

        return to_data_uri(mime_type, base64.b64encode(image_bytes).decode("ascii"))

    def _mime_for_extension(self, extension: str) -> Optional[str]:
        return self._MIME_BY_EXTENSION.get((extension or "").lower())


def to_data_uri(mime_type: str, base64_data: str) -> str:
    return f"data:{mime_type};base64,{base64_data}"


def parse_data_uri(data_uri: str) -> Optional[Tuple[str, str]]:
    """Split a data-URI into (mime_type, base64 payload), or None if malformed."""
    if not isinstance(data_uri, str):
        return None
    match = _DATA_URI_PATTERN.match(data_uri)
    if not match:
        return None
    return match.group(1), match.group(2)


def decode_data_uri(data_uri: str) -> Optional[Tuple[str, bytes]]:
    """Return (mime_type, raw bytes) for a well formed data-URI, None otherwise."""
    parsed = parse_data_uri(data_uri)
    if parsed is None:
        return None
    mime_type, payload = parsed
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        logger.warning("Failed to decode base64 attachment payload: %s", exc)
        return None
