import json

import pytest

from engine_config import EngineConfig
from sanitizer import (
    parse_model_json,
    question_is_structurally_valid,
    sanitize_anchor_summary,
    sanitize_synthesis,
    sanitize_title,
    sanitize_work_block,
)
from schemas import SafetyValue


CONFIG = EngineConfig()


def block(question, **extra):
    raw = {"work_block": {"lead_in": "Nézzük meg újra.", "question": question, "cta": "Írd le röviden."}}
    raw.update(extra)
    return raw


def test_parse_model_json_salvages_wrapped_object():
    text = 'Persze, itt a válasz: {"work_block": {"question": "Mi volt ott?"}} remélem jó'
    assert parse_model_json(text) == {"work_block": {"question": "Mi volt ott?"}}


def test_parse_model_json_rejects_non_objects():
    assert parse_model_json("") is None
    assert parse_model_json("[1, 2]") is None
    assert parse_model_json("{nem json}") is None


@pytest.mark.parametrize(
    "question",
    [
        "",
        "Mit láttál? Kit láttál?",
        "1. Mit láttál a kertben",
        "Első sor\nmásodik sor\nharmadik sor",
        "Első sor\rmásodik sor\rharmadik sor?",
        "Első sor\r\nmásodik sor\r\nharmadik sor?",
        "Melyik volt erősebb: 1) a félelem 2) a kíváncsiság",
        "Mit választanál: 1. a kertet, 2. a házat, 3. az ajtót?",
    ],
)
def test_structurally_invalid_questions(question):
    assert question_is_structurally_valid(question) is False
    assert sanitize_work_block(block(question), CONFIG) is None


def test_single_line_break_is_allowed():
    assert question_is_structurally_valid("Mi volt az ajtó mögött?\nÍrd le egy szóval.") is True
    assert question_is_structurally_valid("Mi volt az ajtó mögött?\r\nÍrd le egy szóval.") is True


def test_single_ordinal_is_not_a_list():
    assert question_is_structurally_valid("Mit láttál a 2. emeleten?") is True


def test_work_block_requires_question_string():
    assert sanitize_work_block({"work_block": {"lead_in": "x"}}, CONFIG) is None
    assert sanitize_work_block({"work_block": "Mi volt?"}, CONFIG) is None
    assert sanitize_work_block("nem dict", CONFIG) is None


def test_work_block_clamps_and_drops_bad_fields():
    raw = {
        "work_block": {"lead_in": "a" * 400, "question": "  " + "b" * 200 + "?", "cta": 42},
        "stop_signal": {"suggest_stop": "yes", "reason": "r" * 100},
        "flags": {"safety": "none"},
    }
    card = sanitize_work_block(raw, CONFIG)
    assert len(card.work_block.lead_in) == CONFIG.lead_in_limit
    assert len(card.work_block.question) == CONFIG.question_limit
    assert card.work_block.cta is None
    assert card.stop_signal.suggest_stop is False
    assert len(card.stop_signal.reason) == CONFIG.reason_limit


def test_work_block_safety_flag():
    assert sanitize_work_block(block("Mi volt ott?"), CONFIG).flags.safety == SafetyValue.NONE
    flagged = block("Mi volt ott?", flags={"safety": "ismeretlen"})
    assert sanitize_work_block(flagged, CONFIG).flags.safety == SafetyValue.OTHER


def test_work_block_is_idempotent():
    raw = {
        "work_block": {"lead_in": " Lassíts le.  " + "x" * 300, "question": "Mit éreztél az ajtónál?   ", "cta": None},
        "stop_signal": {"suggest_stop": True, "reason": "max_cards"},
        "flags": {"safety": "none"},
    }
    once = sanitize_work_block(raw, CONFIG)
    twice = sanitize_work_block(once.model_dump(mode="json"), CONFIG)
    assert twice == once


def test_synthesis_drops_wrong_types():
    raw = {
        "anchors": {"characters": ["anya", 3, "  ", "apa"], "places": "kert", "objects": None},
        "candidate_directions": "a",
        "question_seed": {"preferred_style": "freestyle", "target_anchor": 7},
        "prior_echoes_used": "none",
        "flags": {"safety": "nonsense", "too_short": "true"},
    }
    out = sanitize_synthesis(raw, ["a"], False, [], CONFIG)
    assert out.anchors.characters == ["anya", "apa"]
    assert out.anchors.places == []
    assert out.candidate_directions == []
    assert out.question_seed.preferred_style == ""
    assert out.question_seed.target_anchor == ""
    assert out.prior_echoes_used == []
    assert out.flags.safety == SafetyValue.NONE
    assert out.flags.too_short is False


def test_synthesis_caps_anchor_lists():
    raw = {"anchors": {"beats": [f"jelenet {i}" for i in range(10)]}}
    out = sanitize_synthesis(raw, [], False, [], CONFIG)
    assert len(out.anchors.beats) == CONFIG.max_anchor_items


def test_synthesis_is_idempotent():
    raw = json.loads(
        '{"anchors": {"felt_words": ["félelem", "öröm"]}, "candidate_directions": ["b", "a", "b", "q"],'
        ' "question_seed": {"preferred_style": "resonance_single", "target_anchor": "híd"},'
        ' "prior_echoes_used": [{"session_id": "s0", "matched_items": ["híd"]}],'
        ' "flags": {"safety": "none"}}'
    )
    once = sanitize_synthesis(raw, ["a", "b"], False, ["s0"], CONFIG)
    twice = sanitize_synthesis(once.model_dump(mode="json"), ["a", "b"], False, ["s0"], CONFIG)
    assert once.candidate_directions == ["b", "a"]
    assert twice == once


def test_anchor_summary_and_title_clamps():
    assert len(sanitize_anchor_summary("szó " * 400, CONFIG)) <= CONFIG.anchor_summary_limit
    assert sanitize_anchor_summary(None, CONFIG) == ""
    title = sanitize_title("Nagyon hosszú cím " * 10, CONFIG)
    assert len(title) <= CONFIG.title_limit
    assert title.endswith("…")
    assert sanitize_title(title, CONFIG) == title
