"""Short dream titles: validation rules plus a model call with one retry and a fixed fallback.

Title generation is enrichment; it never fails the request.
"""

from typing import Any, Awaitable, Callable, Optional

from engine_config import EngineConfig
from errors import ModelCallError
from prompts import title_system_prompt
from sanitizer import parse_model_json, sanitize_title
from telemetry import append_card_telemetry


TITLE_ATTEMPTS = 2
SENTENCE_PUNCTUATION = ".!?,;:"


def capitalize_first(text: str) -> str:
    if not text:
        return ""
    return text[0].upper() + text[1:]


def title_word_count(title: str) -> int:
    return len([w for w in title.split(" ") if w])


def is_generic_title(title: str, config: EngineConfig) -> bool:
    cleaned = sanitize_title(title, config)
    return not cleaned or cleaned.lower() in config.generic_titles


def looks_sentence_like(title: str, config: EngineConfig) -> bool:
    cleaned = sanitize_title(title, config)
    if not cleaned or len(cleaned) > 48:
        return True
    if any(ch in cleaned for ch in SENTENCE_PUNCTUATION):
        return True
    lowered = cleaned.lower()
    return any(w in lowered for w in config.title_filler_words)


def is_acceptable_title(title: str, config: EngineConfig) -> bool:
    if is_generic_title(title, config) or looks_sentence_like(title, config):
        return False
    return 2 <= title_word_count(sanitize_title(title, config)) <= 4


def normalize_title(raw: Any, config: EngineConfig) -> str:
    return capitalize_first(sanitize_title(raw, config))


class TitleGenerator:
    def __init__(self, config: EngineConfig, call_model: Callable[[str, dict], Awaitable[str]]):
        self.config = config
        self.call_model = call_model

    async def generate(
        self,
        dream_text: str,
        framing_text: str = "",
        anchors: Optional[dict] = None,
        existing_title: Optional[str] = None,
    ) -> str:
        existing = normalize_title(existing_title, self.config)
        if existing and is_acceptable_title(existing, self.config):
            return existing

        if len(dream_text.strip()) < self.config.min_narrative_length:
            return self.config.short_note_title

        payload = {
            "framing_text": framing_text,
            "anchors": anchors,
            "dream_text_excerpt": dream_text[:700],
        }
        for attempt in range(TITLE_ATTEMPTS):
            try:
                raw = await self.call_model(title_system_prompt(), payload)
            except ModelCallError as exc:
                append_card_telemetry("title_call_failed", {"attempt": attempt + 1, "error": exc.message})
                continue
            parsed = parse_model_json(raw) or {}
            candidate = normalize_title(parsed.get("title"), self.config)
            if is_acceptable_title(candidate, self.config):
                return candidate
            append_card_telemetry("title_rejected", {"attempt": attempt + 1, "title": candidate})

        return self.config.fallback_title
