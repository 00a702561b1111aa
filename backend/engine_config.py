"""Engine configuration: one immutable value handed to every component."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

# Load backend/.env early so every component sees the same settings.
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)


def _env_int(name: str, default: int, min_value: int, max_value: int) -> int:
    raw = os.getenv(name)
    try:
        value = int(raw) if raw not in (None, "") else default
    except ValueError:
        value = default
    return max(min_value, min(max_value, value))


def _env_float(name: str, default: float, min_value: float, max_value: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw not in (None, "") else default
    except ValueError:
        value = default
    return max(min_value, min(max_value, value))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


HUNGARIAN_STOP_WORDS = (
    "egy", "az", "és", "hogy", "nem", "meg", "még", "már", "csak", "mint",
    "vagy", "mert", "ezt", "azt", "van", "volt", "lesz", "nagyon", "most",
    "itt", "ott", "akkor", "aztán", "amikor", "ami", "amit", "ahol", "után",
    "alatt", "között", "milyen", "melyik", "hogyan", "miért", "neked", "vele",
    "benne", "abban", "ebben", "egyik", "olyan", "ilyen", "valami", "mit",
)

ENGLISH_STOP_WORDS = (
    "the", "and", "was", "were", "what", "when", "where", "which", "that",
    "this", "with", "you", "your", "how", "why", "did", "does", "have", "had",
    "from", "about", "into", "there", "then", "they", "them", "for", "are",
    "but", "not", "its", "can", "could", "would",
)

QUESTION_STYLES = (
    "sequence_probe_single",
    "state_probe_single",
    "emotion_label_single",
    "sensory_probe_single",
    "compare_probe_single",
    "resonance_single",
    "open_question_single",
    "perspective_shift_single",
    "creative_transform_single",
    "closure_choice_single",
)


class EngineConfig(BaseModel):
    """Limits, thresholds and fixed copy for the card engine."""

    model_config = ConfigDict(frozen=True)

    # request bounds
    max_history: int = 4
    max_prior_echoes: int = 2
    max_allowed_slugs: int = 10
    min_narrative_length: int = 20

    # text ceilings
    lead_in_limit: int = 280
    question_limit: int = 160
    cta_limit: int = 120
    anchor_summary_limit: int = 800
    title_limit: int = 72
    reason_limit: int = 64

    # sanitizer
    max_anchor_items: int = 6
    min_candidates: int = 3
    max_candidates: int = 5
    max_recommendations: int = 3
    max_matched_items: int = 2
    question_styles: tuple[str, ...] = QUESTION_STYLES

    # stop criteria
    brief_answer_limit: int = 30

    # novelty
    novelty_threshold: float = 0.72
    novelty_window: int = 2
    novelty_min_token_length: int = 3
    stop_words: frozenset[str] = frozenset(HUNGARIAN_STOP_WORDS + ENGLISH_STOP_WORDS)

    # deterministic candidate backfill, tried in this order
    backfill_keyword_groups: tuple[tuple[str, ...], ...] = (
        ("narrativ", "struktur"),
        ("test", "lenyomat"),
        ("lezar", "elenged"),
    )

    # closure copy
    closure_lead_in: str = "Köszönöm, hogy megosztottad. Ha szeretnéd, itt most megpihenhetünk."
    closure_question: str = "Szeretnéd itt lezárni most?"
    low_novelty_lead_in: str = "Úgy tűnik, ezt a szálat már alaposan körbejártuk. Itt most megállhatunk."
    low_novelty_question: str = "Szeretnéd itt lezárni, vagy inkább egy másik irányt választanál?"

    # framing
    framing_limit: int = 1200
    recommendation_reason_limit: int = 200
    short_framing_text: str = (
        "Az álomleírás nagyon rövid, de fontos, hogy időt szánj rá: "
        "pár mondatban írd le, mi történt és milyen érzések kísérték. Folytasd, amikor készen állsz."
    )
    safety_framing_text: str = (
        "Köszönöm, hogy megosztottad. Ami most benned van, fontosabb az álom feldolgozásánál. "
        "Ha nehéz, kérj segítséget egy hozzád közel álló embertől vagy egy segélyvonaltól."
    )
    fallback_recommendation_reasons: tuple[str, ...] = (
        "Ez az irány segíthet egy konkrét részletnél időzni.",
        "Ez a megközelítés lehetőséget ad az érzetek megfigyelésére.",
        "Ez a lépésről lépésre vezetett irány biztonságos keretet ad a munkához.",
    )

    # titles
    short_note_title: str = "Rövid álomjegyzet"
    fallback_title: str = "Menekülés és veszély"
    generic_titles: tuple[str, ...] = ("álom", "álomjelenet", "jelenet", "álomnapló")
    title_filler_words: tuple[str, ...] = (
        "ugyanakkor", "valamennyire", "mintha", "ahogy", "és akkor", "de közben", "közben",
    )

    # model calls
    model_timeout_sec: float = 45.0
    side_synthesis_enabled: bool = True


def load_engine_config() -> EngineConfig:
    return EngineConfig(
        max_history=_env_int("CARD_MAX_HISTORY", 4, 1, 20),
        min_narrative_length=_env_int("CARD_MIN_NARRATIVE_LENGTH", 20, 1, 400),
        brief_answer_limit=_env_int("CARD_BRIEF_ANSWER_LIMIT", 30, 1, 400),
        novelty_threshold=_env_float("CARD_NOVELTY_THRESHOLD", 0.72, 0.10, 1.0),
        model_timeout_sec=_env_float("CARD_MODEL_TIMEOUT_SEC", 45.0, 1.0, 300.0),
        side_synthesis_enabled=_env_bool("CARD_SIDE_SYNTHESIS_ENABLED", True),
    )
