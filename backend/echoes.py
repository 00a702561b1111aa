"""Prior-echo selection: pick at most two past sessions most similar to the current one."""

import math
import re
from datetime import datetime
from functools import cmp_to_key
from typing import Optional

from engine_config import EngineConfig
from schemas import EchoCandidate, PriorEcho


SIMILARITY_TIE_EPSILON = 0.02
TOP_SCORED = 5
WORD_REGEX = re.compile(r"[^\W\d_]+(?:'[^\W\d_]+)?")
GENERIC_STOPWORDS = {
    "the", "and", "a", "to", "of", "in", "i", "it", "that", "was", "is", "for",
    "on", "with", "as", "but", "this", "at", "by", "from", "or", "an", "be",
    "were", "are", "my", "we", "our", "you", "your",
}


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    denom = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 0.0 if denom == 0 else dot / denom


def is_generic_summary(summary: str) -> bool:
    tokens = WORD_REGEX.findall((summary or "").lower())
    if len(tokens) < 5:
        return True
    stop_ratio = sum(1 for t in tokens if t in GENERIC_STOPWORDS) / len(tokens)
    unique_ratio = len(set(tokens)) / len(tokens)
    return stop_ratio > 0.6 or unique_ratio < 0.4


def _timestamp(value: str) -> float:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _compare(a: tuple[EchoCandidate, float], b: tuple[EchoCandidate, float]) -> int:
    diff = b[1] - a[1]
    if abs(diff) < SIMILARITY_TIE_EPSILON:
        newer = _timestamp(b[0].created_at) - _timestamp(a[0].created_at)
        return (newer > 0) - (newer < 0)
    return (diff > 0) - (diff < 0)


def select_prior_echoes(
    query_embedding: Optional[list[float]],
    candidates: list[EchoCandidate],
    current_session_id: str,
    config: EngineConfig,
) -> list[PriorEcho]:
    if not query_embedding:
        return []
    scored = [
        (c, cosine_similarity(query_embedding, c.embedding))
        for c in candidates
        if c.session_id != current_session_id and c.embedding
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    ranked = sorted(scored[:TOP_SCORED], key=cmp_to_key(_compare))

    preferred = [pair for pair in ranked if not is_generic_summary(pair[0].anchor_summary)]
    chosen = (preferred or ranked)[: config.max_prior_echoes]
    return [
        PriorEcho(
            session_id=c.session_id,
            created_at=c.created_at,
            anchor_summary=c.anchor_summary[: config.anchor_summary_limit],
        )
        for c, _ in chosen
    ]
