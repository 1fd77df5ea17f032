from __future__ import annotations

import mimetypes
from pathlib import PurePosixPath

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def detect_content_type(path: str) -> str:
    suffix = PurePosixPath(path or "").suffix
    if not suffix:
        return DEFAULT_CONTENT_TYPE
    content_type, _encoding = mimetypes.guess_type(f"file{suffix.lower()}", strict=False)
    return content_type or DEFAULT_CONTENT_TYPE
