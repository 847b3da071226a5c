"""
Allowlist for remotely loaded images.

Only two external sources may serve images to the portal: the storage
provider's public buckets and the avatar generator. Patterns use glob
syntax:
- hostname: ``*`` matches one DNS label, ``**`` matches one or more labels
- pathname: ``*`` matches within one path segment, ``**`` matches anything;
  a trailing ``/**`` also matches the bare prefix

Dot segments (also percent-encoded ones) are resolved before a path is
matched, so ``/storage/v1/../../rest`` is checked as ``/rest``.
"""

import re
from functools import lru_cache
from typing import List, Optional, Pattern
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel

_LABEL = r"[a-z0-9-]+"


class RemotePattern(BaseModel):
    protocol: str
    hostname: str
    pathname: str = "/**"
    port: Optional[str] = None


REMOTE_IMAGE_PATTERNS: List[RemotePattern] = [
    RemotePattern(protocol="https", hostname="**.supabase.co", pathname="/storage/v1/**"),
    RemotePattern(protocol="https", hostname="api.dicebear.com", pathname="/**"),
]


@lru_cache(maxsize=None)
def _hostname_regex(pattern: str) -> Pattern:
    parts = []
    for label in pattern.lower().split("."):
        if label == "**":
            parts.append(rf"(?:{_LABEL}\.)*{_LABEL}")
        elif label == "*":
            parts.append(_LABEL)
        else:
            parts.append(re.escape(label))
    return re.compile(r"\.".join(parts) + r"\Z")


@lru_cache(maxsize=None)
def _pathname_regex(pattern: str) -> Pattern:
    suffix = ""
    if pattern.endswith("/**"):
        pattern, suffix = pattern[:-3], "(?:/.*)?"
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out) + suffix + r"\Z")


def _resolve_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    out: List[str] = []
    for i, segment in enumerate(segments):
        dot = unquote(segment)
        if dot in (".", ".."):
            if dot == ".." and out:
                out.pop()
            if i == len(segments) - 1:
                out.append("")
            continue
        out.append(segment)
    return "/" + "/".join(out)


def matches_pattern(url: str, pattern: RemotePattern) -> bool:
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return False

    if parts.scheme != pattern.protocol:
        return False
    if parts.username or parts.password:
        return False
    if (str(port) if port is not None else None) != pattern.port:
        return False
    if not parts.hostname or not _hostname_regex(pattern.hostname).match(parts.hostname):
        return False
    path = _resolve_dot_segments(parts.path or "/")
    return bool(_pathname_regex(pattern.pathname).match(path))


def is_allowed_remote_image(url: str, patterns: Optional[List[RemotePattern]] = None) -> bool:
    """
    Check a remote image URL against the allowlist.

    Args:
        url: Absolute image URL
        patterns: Patterns to check (defaults to REMOTE_IMAGE_PATTERNS)

    Returns:
        True only if some pattern matches protocol, host, port and path
    """
    for pattern in patterns if patterns is not None else REMOTE_IMAGE_PATTERNS:
        if matches_pattern(url, pattern):
            return True
    return False
