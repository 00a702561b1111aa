"""Novelty guard: keeps the model from re-asking a recent question.

Similarity is the Jaccard index of content-word sets. A candidate that is too
close to one of the last questions gets exactly one regeneration; a second
miss ends the direction with a low-novelty closure.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from engine_config import EngineConfig
from schemas import CardResponse


NON_WORD_REGEX = re.compile(r"[\W_]+", re.UNICODE)


class NoveltyAttempt(str, Enum):
    FIRST = "first"
    RETRY = "retry"
    EXHAUSTED = "exhausted"


def next_attempt(attempt: NoveltyAttempt) -> NoveltyAttempt:
    if attempt == NoveltyAttempt.FIRST:
        return NoveltyAttempt.RETRY
    return NoveltyAttempt.EXHAUSTED


def normalize_for_novelty(text: str) -> str:
    lowered = (text or "").lower()
    return " ".join(NON_WORD_REGEX.sub(" ", lowered).split())


def novelty_tokens(text: str, stop_words: frozenset[str], min_length: int = 3) -> frozenset[str]:
    return frozenset(
        t for t in normalize_for_novelty(text).split() if len(t) >= min_length and t not in stop_words
    )


def jaccard_similarity(a: frozenset[str], b: frozenset[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / float(len(union))


@dataclass(frozen=True)
class NoveltyOutcome:
    card: Optional[CardResponse]
    attempt: NoveltyAttempt
    model_calls: int


# (attempt, forbidden questions) -> sanitized card; raises on hard failure
CardProducer = Callable[[NoveltyAttempt, list[str]], Awaitable[CardResponse]]


class NoveltyGuard:
    def __init__(self, config: EngineConfig):
        self.config = config

    def tokens(self, text: str) -> frozenset[str]:
        return novelty_tokens(text, self.config.stop_words, self.config.novelty_min_token_length)

    def similarity(self, a: str, b: str) -> float:
        return jaccard_similarity(self.tokens(a), self.tokens(b))

    def recent_questions(self, prior_questions: list[str]) -> list[str]:
        return [q for q in prior_questions if q][-self.config.novelty_window :]

    def is_too_similar(self, candidate: str, prior_questions: list[str]) -> bool:
        recent = self.recent_questions(prior_questions)
        if not recent:
            return False
        if candidate.strip().lower() == recent[-1].strip().lower():
            return True
        return any(self.similarity(candidate, q) >= self.config.novelty_threshold for q in recent)

    def retry_instruction(self, forbidden: list[str]) -> dict:
        return {
            "forbidden_questions": forbidden,
            "instruction": (
                "The previous candidate repeated an earlier question. "
                "Do not reuse or paraphrase any forbidden question. "
                "Shift the focus to a different anchor, sense, or moment of the dream."
            ),
        }

    async def run(self, produce: CardProducer, prior_questions: list[str]) -> NoveltyOutcome:
        forbidden = self.recent_questions(prior_questions)
        attempt = NoveltyAttempt.FIRST
        calls = 0
        while attempt != NoveltyAttempt.EXHAUSTED:
            card = await produce(attempt, forbidden)
            calls += 1
            if not self.is_too_similar(card.work_block.question, prior_questions):
                return NoveltyOutcome(card=card, attempt=attempt, model_calls=calls)
            attempt = next_attempt(attempt)
        return NoveltyOutcome(card=None, attempt=attempt, model_calls=calls)
