"""Normalization of caller-supplied inputs: history, echoes, slugs, direction metadata.

Everything here is pure; nothing reaches the model.
"""

from typing import Any, Optional

from engine_config import EngineConfig
from schemas import Direction, HistoryItem, PriorEcho, StopCriteria


DIRECTION_SECTIONS = (
    "method_spec",
    "output_spec",
    "safety",
    "focus_model",
    "selection_hints",
)


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    n = int(value)
    return n if n > 0 else None


def _dict_or_empty(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def parse_stop_criteria(raw: Any) -> StopCriteria:
    data = _dict_or_empty(raw)
    return StopCriteria(
        max_cards=_positive_int(data.get("max_cards")),
        stop_if_user_brief_streak=_positive_int(data.get("stop_if_user_brief_streak")),
        stop_if_repetition_detected=data.get("stop_if_repetition_detected") is True,
    )


def resolve_direction(raw: Any) -> Optional[Direction]:
    """Resolve a catalog row into the canonical Direction.

    Two shapes arrive: a flat entry, or a catalog row whose method fields sit
    under ``content``. Identity fields (slug, title) come from the outer row.
    """
    if not isinstance(raw, dict):
        return None
    content = raw.get("content")
    body = content if isinstance(content, dict) else raw

    def _text(key: str, *sources: dict) -> str:
        for src in sources:
            value = src.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    sections = {key: _dict_or_empty(body.get(key)) for key in DIRECTION_SECTIONS}
    return Direction(
        slug=_text("slug", raw, body),
        title=_text("title", raw, body),
        micro_description=_text("micro_description", body, raw) or _text("description", raw),
        stop_criteria=parse_stop_criteria(body.get("stop_criteria")),
        **sections,
    )


def reduce_direction_for_model(direction: Direction) -> dict:
    """Only the fields that shape question style and focus."""
    reduced: dict[str, Any] = {"slug": direction.slug}
    if direction.method_spec:
        reduced["method_spec"] = direction.method_spec
    if direction.focus_model:
        reduced["focus_model"] = direction.focus_model
    if direction.output_spec:
        reduced["output_spec"] = direction.output_spec
    return reduced


def reduce_catalog_for_model(catalog: Any) -> Optional[list[dict]]:
    def _pick(item: Any) -> Optional[dict]:
        if not isinstance(item, dict):
            return None
        slug = item.get("slug")
        if not isinstance(slug, str) or not slug:
            return None
        content = _dict_or_empty(item.get("content"))
        return {
            "slug": slug,
            "content": {
                "method_spec": content.get("method_spec"),
                "selection_hints": content.get("selection_hints"),
                "stop_criteria": content.get("stop_criteria"),
                "output_spec": content.get("output_spec"),
                "safety": content.get("safety"),
                "micro_description": content.get("micro_description"),
            },
        }

    items = _catalog_items(catalog)
    if items is None:
        return None
    return [picked for picked in (_pick(i) for i in items) if picked is not None]


def _catalog_items(catalog: Any) -> Optional[list]:
    if isinstance(catalog, list):
        return catalog
    if isinstance(catalog, dict):
        for key in ("directions", "items"):
            if isinstance(catalog.get(key), list):
                return catalog[key]
    return None


def reduce_catalog_for_pick(catalog: Any, allowed: list[str]) -> list[dict]:
    """Slug, title and one-line summary per allowed entry, in allow-list order."""
    by_slug: dict[str, dict] = {}
    for item in _catalog_items(catalog) or []:
        direction = resolve_direction(item)
        if direction is None or not direction.slug or direction.slug in by_slug:
            continue
        by_slug[direction.slug] = {
            "slug": direction.slug,
            "title": direction.title,
            "summary": direction.micro_description,
        }
    return [by_slug.get(slug) or {"slug": slug, "title": "", "summary": ""} for slug in allowed]


def catalog_slugs(catalog: Any) -> list[str]:
    out: list[str] = []
    for item in _catalog_items(catalog) or []:
        slug = item.get("slug") if isinstance(item, dict) else None
        if isinstance(slug, str) and slug.strip():
            out.append(slug.strip())
    return out


def valid_history_items(history: Any) -> list[HistoryItem]:
    if not isinstance(history, list):
        return []
    items: list[HistoryItem] = []
    for raw in history:
        if not isinstance(raw, dict):
            continue
        question = raw.get("question")
        answer = raw.get("answer")
        if not isinstance(question, str) or not question:
            continue
        if answer is not None and not isinstance(answer, str):
            continue
        items.append(HistoryItem(question=question, answer=answer))
    return items


def clamp_history(history: Any, config: EngineConfig) -> list[HistoryItem]:
    return valid_history_items(history)[-config.max_history :]


def clamp_prior_echoes(echoes: Any, config: EngineConfig) -> list[PriorEcho]:
    if not isinstance(echoes, list):
        return []
    out: list[PriorEcho] = []
    for raw in echoes[: config.max_prior_echoes]:
        if not isinstance(raw, dict):
            continue
        session_id = raw.get("session_id")
        summary = raw.get("anchor_summary")
        created_at = raw.get("created_at")
        if not (isinstance(session_id, str) and session_id):
            continue
        if not (isinstance(summary, str) and summary):
            continue
        out.append(
            PriorEcho(
                session_id=session_id,
                anchor_summary=summary[: config.anchor_summary_limit],
                created_at=created_at if isinstance(created_at, str) else "",
            )
        )
    return out


def clean_allowed_slugs(
    allowed: Any, config: EngineConfig, fallback_slug: str = ""
) -> list[str]:
    """Caller allow-list, capped; degrades to the active direction's slug."""
    slugs: list[str] = []
    if isinstance(allowed, list):
        for s in allowed:
            if isinstance(s, str) and s.strip() and s.strip() not in slugs:
                slugs.append(s.strip())
    slugs = slugs[: config.max_allowed_slugs]
    if not slugs and fallback_slug:
        slugs = [fallback_slug]
    return slugs
