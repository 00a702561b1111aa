"""Low-level text helpers used across the card engine.

No dependency on schemas, config, or any other project module.
"""

import json
import re
from typing import Optional


NUMBERED_LIST_REGEX = re.compile(r"(^|\r|\n)\s*\d+\s*[.)]\s+")
# "1) ... 2) ..." written inline on one line
INLINE_ENUMERATOR_REGEX = re.compile(r"(?:^|\s)\d+\s*[.)]\s")
LINE_BREAK_REGEX = re.compile(r"\r\n|\r|\n")


def normalize_whitespace(text: str) -> str:
    return " ".join((text or "").split()).strip()


def clamp_text(text: str, limit: int) -> str:
    """Trim and cut to *limit* chars; a second pass never changes the result."""
    if not text:
        return ""
    return text.strip()[:limit].rstrip()


def truncate_with_ellipsis(text: str, limit: int, marker: str = "…") -> str:
    cleaned = normalize_whitespace(text)
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[: max(0, limit - 3)].rstrip() + marker


def line_break_count(text: str) -> int:
    return len(LINE_BREAK_REGEX.findall(text or ""))


def has_numbered_list(text: str) -> bool:
    """Enumerator at a line start, or two or more enumerators anywhere."""
    raw = text or ""
    if NUMBERED_LIST_REGEX.search(raw):
        return True
    return len(INLINE_ENUMERATOR_REGEX.findall(raw)) >= 2


def extract_json_object(text: str) -> Optional[dict]:
    raw = (text or "").strip()
    if not raw:
        return None
    try:
        obj = json.loads(raw)
        return obj if isinstance(obj, dict) else None
    except ValueError:
        pass

    start = raw.find("{")
    end = raw.rfind("}")
    if start >= 0 and end > start:
        chunk = raw[start : end + 1]
        try:
            obj = json.loads(chunk)
            return obj if isinstance(obj, dict) else None
        except ValueError:
            return None
    return None


def string_items(values, limit: int) -> list[str]:
    """Keep string elements only, trimmed, empties dropped, at most *limit*."""
    if not isinstance(values, list):
        return []
    out: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        t = v.strip()
        if t:
            out.append(t)
        if len(out) >= limit:
            break
    return out
