"""Helper utilities for the OpenSubtitles proxy"""

import re
import logging
import unicodedata
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import quote, urlparse

from .exceptions import InvalidRequestError

logger = logging.getLogger(__name__)

DEFAULT_SUB_FORMAT = "srt"


def pick_param(params: Mapping[str, Any], keys: Iterable[str]) -> str:
    """Return the first non-blank value found under any of ``keys``"""
    for key in keys:
        value = params.get(key)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return ""


def parse_file_id(value: Any) -> int:
    """Parse a subtitle file id, which must be a positive integer"""
    if value is None or str(value).strip() == "":
        raise InvalidRequestError("Missing file_id")
    try:
        file_id = int(str(value).strip())
    except ValueError:
        raise InvalidRequestError(f"Invalid file_id: {value!r}")
    if file_id <= 0:
        raise InvalidRequestError(f"Invalid file_id: {value!r}")
    return file_id


def normalize_sub_format(value: Optional[str], default: Optional[str] = DEFAULT_SUB_FORMAT) -> Optional[str]:
    """Lowercase a subtitle format name, keeping only safe characters"""
    if value is None or not str(value).strip():
        return default
    cleaned = re.sub(r'[^a-z0-9]', '', str(value).strip().lower())
    return cleaned or default


def sanitize_filename(filename: str) -> str:
    """Sanitize a filename for use inside a Content-Disposition header"""
    # Quotes, backslashes and control characters would break the header
    filename = re.sub(r'["\\\x00-\x1f\x7f]', '', filename)
    # Keep only the last path component
    filename = filename.split('/')[-1]
    filename = filename.strip(' .')
    if len(filename) > 255:
        filename = filename[:255]
    return filename


def attachment_filename(file_name: Optional[str], sub_format: str) -> str:
    """Pick the download filename, falling back to ``subtitle.<format>``"""
    if file_name:
        cleaned = sanitize_filename(str(file_name))
        if cleaned:
            return cleaned
    return f"subtitle.{sub_format}"


def ascii_filename(filename: str) -> str:
    """Closest ASCII spelling of ``filename``, for clients that ignore filename*"""
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""
    stem, extension = (
        unicodedata.normalize("NFKD", part).encode("ascii", "ignore").decode("ascii")
        for part in (stem, extension)
    )
    if not re.search(r"[A-Za-z0-9]", stem):
        stem = "subtitle"
    return sanitize_filename(f"{stem}.{extension}" if extension else stem) or "subtitle"


def content_disposition(filename: str) -> str:
    """
    Attachment header for ``filename``

    Header values must be latin-1, so non-ASCII names are sent as an RFC 5987
    ``filename*`` next to an ASCII ``filename`` fallback.
    """
    if filename.isascii():
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{ascii_filename(filename)}\"; filename*=utf-8''{quote(filename)}"


def build_url(base_url: str, path: str) -> str:
    """Join the upstream base URL and an API path"""
    base = base_url.rstrip('/')
    clean_path = path.lstrip('/')
    return f"{base}/{clean_path}"


def is_valid_url(url: str) -> bool:
    """Check that a URL is an absolute http(s) URL"""
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def extract_message(data: Any, text: str = "") -> str:
    """Pull a human readable message out of an upstream response body"""
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if value:
                return str(value)
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(error) for error in errors)
    return text.strip()
