"""Validation and clamping of untrusted model JSON, one function per output shape.

Rules shared by every shape:
- fields of the wrong type are dropped, never coerced;
- list fields are filtered element by element, the list itself survives;
- identifiers outside the caller's allow-list are discarded;
- user-facing strings are clamped to fixed ceilings.

A ``None`` result means "fall back", never "empty success". Running any
sanitizer on its own output returns the same structure.
"""

from typing import Any, Iterable, Optional

from engine_config import EngineConfig
from safety import sanitize_safety_flag
from schemas import (
    Anchors,
    CardFlags,
    CardResponse,
    PriorEchoUsed,
    QuestionSeed,
    RecommendedDirection,
    SafetyValue,
    StopSignal,
    SynthesisFlags,
    SynthesisResponse,
    WorkBlock,
)
from text_utils import (
    clamp_text,
    extract_json_object,
    has_numbered_list,
    line_break_count,
    string_items,
    truncate_with_ellipsis,
)


ANCHOR_CATEGORIES = ("characters", "places", "objects", "beats", "felt_words")


def parse_model_json(raw: str) -> Optional[dict]:
    """Parse model text; one salvage pass from the first ``{`` to the last ``}``."""
    return extract_json_object(raw)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def sanitize_anchors(raw: Any, config: EngineConfig) -> Anchors:
    data = _as_dict(raw)
    return Anchors(
        **{key: string_items(data.get(key), config.max_anchor_items) for key in ANCHOR_CATEGORIES}
    )


def filter_allowed_slugs(values: Any, allowed: Iterable[str], limit: int) -> list[str]:
    """Allow-listed, deduplicated (first occurrence wins), capped at *limit*."""
    if not isinstance(values, list):
        return []
    allowed_set = set(allowed)
    out: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        slug = v.strip()
        if slug not in allowed_set or slug in out:
            continue
        out.append(slug)
        if len(out) >= limit:
            break
    return out


def sanitize_candidate_list(values: Any, allowed: Iterable[str], config: EngineConfig) -> list[str]:
    return filter_allowed_slugs(values, allowed, config.max_candidates)


def sanitize_recommended_list(values: Any, allowed: Iterable[str], config: EngineConfig) -> list[str]:
    """Recommended slugs; entries may be bare slugs or ``{"slug": ..., "reason": ...}``."""
    if not isinstance(values, list):
        return []
    flattened = [v.get("slug") if isinstance(v, dict) else v for v in values]
    return filter_allowed_slugs(flattened, allowed, config.max_recommendations)


def sanitize_question_seed(raw: Any, config: EngineConfig) -> QuestionSeed:
    data = _as_dict(raw)
    style = data.get("preferred_style")
    target = data.get("target_anchor")
    return QuestionSeed(
        preferred_style=style if isinstance(style, str) and style in config.question_styles else "",
        target_anchor=clamp_text(target, config.question_limit) if isinstance(target, str) else "",
    )


def sanitize_prior_echoes_used(
    raw: Any, echo_session_ids: Iterable[str], config: EngineConfig
) -> list[PriorEchoUsed]:
    if not isinstance(raw, list):
        return []
    known = set(echo_session_ids)
    out: list[PriorEchoUsed] = []
    for item in raw[: config.max_prior_echoes]:
        if not isinstance(item, dict):
            continue
        session_id = item.get("session_id")
        if not isinstance(session_id, str) or session_id not in known:
            continue
        out.append(
            PriorEchoUsed(
                session_id=session_id,
                matched_items=string_items(item.get("matched_items"), config.max_matched_items),
            )
        )
    return out


def sanitize_synthesis_flags(raw: Any, too_short: bool) -> SynthesisFlags:
    data = _as_dict(raw)
    return SynthesisFlags(
        safety=sanitize_safety_flag(data.get("safety"), default=SafetyValue.NONE),
        too_short=too_short or data.get("too_short") is True,
    )


def sanitize_synthesis(
    raw: Any,
    allowed: Iterable[str],
    too_short: bool,
    echo_session_ids: Iterable[str],
    config: EngineConfig,
) -> SynthesisResponse:
    """Synthesis payload; candidates are only filtered here, backfill is the selector's job."""
    if not isinstance(raw, dict):
        return SynthesisResponse(flags=SynthesisFlags(too_short=too_short))
    flags = sanitize_synthesis_flags(raw.get("flags"), too_short)
    candidates: list[str] = []
    if flags.safety == SafetyValue.NONE and not flags.too_short:
        candidates = sanitize_candidate_list(raw.get("candidate_directions"), allowed, config)
    return SynthesisResponse(
        anchors=sanitize_anchors(raw.get("anchors"), config),
        candidate_directions=candidates,
        question_seed=sanitize_question_seed(raw.get("question_seed"), config),
        prior_echoes_used=sanitize_prior_echoes_used(raw.get("prior_echoes_used"), echo_session_ids, config),
        flags=flags,
    )


def question_is_structurally_valid(question: str) -> bool:
    if not question:
        return False
    if question.count("?") > 1:
        return False
    if has_numbered_list(question):
        return False
    if line_break_count(question) >= 2:
        return False
    return True


def sanitize_work_block(raw: Any, config: EngineConfig) -> Optional[CardResponse]:
    """Work-block card, or ``None`` when the question is missing or malformed.

    A bad question invalidates the whole card; it is never partially salvaged.
    ``flags.safety`` carries what the model itself reported.
    """
    if not isinstance(raw, dict):
        return None
    block = raw.get("work_block")
    if not isinstance(block, dict):
        return None
    question = block.get("question")
    if not isinstance(question, str):
        return None
    question = question.strip()
    if not question_is_structurally_valid(question):
        return None

    lead_in = block.get("lead_in")
    cta = block.get("cta")
    stop = _as_dict(raw.get("stop_signal"))
    reason = stop.get("reason")
    cta_text = clamp_text(cta, config.cta_limit) if isinstance(cta, str) else ""
    reason_text = clamp_text(reason, config.reason_limit) if isinstance(reason, str) else ""

    return CardResponse(
        work_block=WorkBlock(
            lead_in=clamp_text(lead_in, config.lead_in_limit) if isinstance(lead_in, str) else "",
            question=clamp_text(question, config.question_limit),
            cta=cta_text or None,
        ),
        stop_signal=StopSignal(
            suggest_stop=stop.get("suggest_stop") is True,
            reason=reason_text or None,
        ),
        flags=CardFlags(safety=sanitize_safety_flag(_as_dict(raw.get("flags")).get("safety"))),
    )


def sanitize_anchor_summary(text: Any, config: EngineConfig) -> str:
    if not isinstance(text, str):
        return ""
    return clamp_text(" ".join(text.split()), config.anchor_summary_limit)


def sanitize_title(text: Any, config: EngineConfig) -> str:
    if not isinstance(text, str):
        return ""
    return truncate_with_ellipsis(text, config.title_limit)


def validate_recommendations(
    values: Any, allowed: Iterable[str], config: EngineConfig, expected: int = 3
) -> Optional[list[RecommendedDirection]]:
    """Model-picked directions with reasons, all or nothing.

    Exactly *expected* entries, each an allow-listed slug with a non-empty
    reason and no slug repeated. Anything else returns ``None``.
    """
    if not isinstance(values, list) or len(values) != expected:
        return None
    allowed_set = set(allowed)
    out: list[RecommendedDirection] = []
    for item in values:
        if not isinstance(item, dict):
            return None
        slug = item.get("slug")
        reason = item.get("reason")
        if not isinstance(slug, str) or not isinstance(reason, str):
            return None
        slug = slug.strip()
        reason = clamp_text(" ".join(reason.split()), config.recommendation_reason_limit)
        if slug not in allowed_set or not reason or any(r.slug == slug for r in out):
            return None
        out.append(RecommendedDirection(slug=slug, reason=reason))
    return out
