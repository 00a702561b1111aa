"""Per-direction stop rules evaluated over recent dialogue turns.

Order is fixed: max_cards, repetition, user_brief_streak. The first rule that
fires decides the reason.
"""

from typing import Optional

from engine_config import EngineConfig
from schemas import HistoryItem, StopCriteria, StopSignal


REASON_MAX_CARDS = "max_cards"
REASON_REPETITION = "repetition"
REASON_BRIEF_STREAK = "user_brief_streak"


def detect_repetition(history: list[HistoryItem], enabled: bool) -> bool:
    if not enabled or len(history) < 2:
        return False
    last, prev = history[-1], history[-2]
    return last.question == prev.question and (last.answer or "") == (prev.answer or "")


def detect_brief_streak(history: list[HistoryItem], streak: Optional[int], limit: int) -> bool:
    if not streak or streak <= 0:
        return False
    recent = history[-streak:]
    if len(recent) < streak:
        return False
    return all(len((h.answer or "").strip()) <= limit for h in recent)


class StopCriteriaEvaluator:
    def __init__(self, config: EngineConfig):
        self.config = config

    def evaluate(
        self,
        criteria: StopCriteria,
        history: list[HistoryItem],
        turn_count: Optional[int] = None,
    ) -> StopSignal:
        """*history* is the bounded recent window; *turn_count* defaults to its length."""
        turns = len(history) if turn_count is None else turn_count
        if criteria.max_cards and turns >= criteria.max_cards:
            return StopSignal(suggest_stop=True, reason=REASON_MAX_CARDS)
        if detect_repetition(history, criteria.stop_if_repetition_detected):
            return StopSignal(suggest_stop=True, reason=REASON_REPETITION)
        if detect_brief_streak(history, criteria.stop_if_user_brief_streak, self.config.brief_answer_limit):
            return StopSignal(suggest_stop=True, reason=REASON_BRIEF_STREAK)
        return StopSignal(suggest_stop=False, reason=None)
