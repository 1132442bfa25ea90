"""Small helpers shared by the decoder, correlator and runner."""

import json
import re
from typing import Any, Optional

_WHITESPACE_RE = re.compile(r"\s+")


def safe_json_parse(text: str) -> Optional[Any]:
    """Parse JSON, returning None instead of raising on malformed input."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def timestamp_to_millis(seconds: int, nanos: int) -> int:
    """Convert a {seconds, nanos} timestamp to whole milliseconds.

    Sub-millisecond precision is truncated, not rounded.
    """
    return int(seconds) * 1000 + int(nanos) // 1_000_000


def sanitize_name(name: str) -> str:
    """Replace every run of whitespace with a single underscore."""
    return _WHITESPACE_RE.sub("_", name)


def normalize_uri(uri: str) -> str:
    """Use forward slashes regardless of the platform that produced the uri."""
    return uri.replace("\\", "/")
