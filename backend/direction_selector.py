"""Direction selection for synthesis candidates and the fixed-size recommender."""

from typing import Any

from engine_config import EngineConfig
from safety import is_unsafe
from sanitizer import sanitize_candidate_list, sanitize_recommended_list
from schemas import RecommendedDirection, RecommendResponse, SynthesisFlags


class DirectionSelector:
    def __init__(self, config: EngineConfig):
        self.config = config

    def _backfill(self, chosen: list[str], allowed: list[str], target: int) -> list[str]:
        picked = list(chosen)
        for group in self.config.backfill_keyword_groups:
            for slug in allowed:
                if len(picked) >= target:
                    return picked
                if slug in picked:
                    continue
                if any(kw in slug.lower() for kw in group):
                    picked.append(slug)
        for slug in allowed:
            if len(picked) >= target:
                break
            if slug not in picked:
                picked.append(slug)
        return picked

    def select_candidates(self, raw: Any, allowed: list[str], flags: SynthesisFlags) -> list[str]:
        """Ranked 3-5 candidates; deterministic backfill when the model falls short."""
        if is_unsafe(flags.safety) or flags.too_short:
            return []
        filtered = sanitize_candidate_list(raw, allowed, self.config)
        target = min(self.config.min_candidates, self.config.max_candidates, len(allowed))
        if target == 0 or len(filtered) >= target:
            return filtered
        return self._backfill(filtered, allowed, target)[: self.config.max_candidates]

    def recommend(
        self, raw: Any, allowed: list[str], flags: SynthesisFlags, max_recs: int = 3
    ) -> RecommendResponse:
        if is_unsafe(flags.safety) or flags.too_short:
            return RecommendResponse(slugs=[], flags=flags)
        limit = max(1, min(max_recs, self.config.max_recommendations))
        slugs = sanitize_recommended_list(raw, allowed, self.config)[:limit]
        if not slugs:
            # degraded single-slug panel instead of an empty one
            return RecommendResponse(slugs=allowed[:1], flags=flags)
        for slug in allowed:
            if len(slugs) >= limit:
                break
            if slug not in slugs:
                slugs.append(slug)
        return RecommendResponse(slugs=slugs, flags=flags)

    def fallback_recommendations(self, allowed: list[str]) -> list[RecommendedDirection]:
        """First allowed slugs in order, paired with the fixed reasons."""
        reasons = self.config.fallback_recommendation_reasons
        return [
            RecommendedDirection(slug=slug, reason=reasons[i % len(reasons)])
            for i, slug in enumerate(allowed[: len(reasons)])
        ]
