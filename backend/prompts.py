"""
System prompts and JSON schemas for every model call site.
"""

import json


CARD_SCHEMA = {
    "work_block": {"lead_in": "", "question": "", "cta": ""},
    "stop_signal": {"suggest_stop": False, "reason": None},
    "flags": {"safety": "none"},
}

SYNTHESIS_SCHEMA = {
    "anchors": {"characters": [], "places": [], "objects": [], "beats": [], "felt_words": []},
    "candidate_directions": [],
    "question_seed": {"preferred_style": "", "target_anchor": ""},
    "prior_echoes_used": [],
    "flags": {"safety": "none", "too_short": False},
}

TITLE_SCHEMA = {"title": ""}


def card_system_prompt(lead_in_limit: int, question_limit: int, cta_limit: int) -> str:
    return "\n".join(
        [
            "You are an API that returns ONLY strict JSON using the provided schema.",
            "Role: generate the next work-block card (1 question) for a dream exploration.",
            "Rules:",
            "- Exactly one question string; non-empty; no multiple questions.",
            "- No numbered lists, at most one line break.",
            "- No interpretation, symbol dictionary, diagnosis, or therapy language.",
            "- Respect direction.method_spec.question_style for tone/shape.",
            f"- Stay under character limits: lead_in <= {lead_in_limit}, question <= {question_limit}, cta <= {cta_limit}.",
            "- Do not repeat or paraphrase any question already in history.",
            "- stop_signal must always be present (suggest_stop=false in normal flow).",
            "- Output JSON only, no markdown, no explanations.",
            "Schema:",
            json.dumps(CARD_SCHEMA),
        ]
    )


def synthesis_system_prompt() -> str:
    return "\n".join(
        [
            "You are an API that emits strict JSON (no prose, no markdown).",
            "Task: latent synthesis for dream direction selection and question seeding.",
            "Rules:",
            "- Output JSON only using the specified schema.",
            "- Anchors must quote literal or near-literal items from dream_text.",
            "- candidate_directions: ranked list of 3-5 slugs, subset of allowed_slugs.",
            "- Respect method_spec and selection_hints to match dream features to catalog.",
            "- prior_echoes_used: literal or near-literal only, max 2 matched items each, differences first.",
            "- Flags: safety can be none | self_harm | reality_confusion | other. If safety triggered, candidate_directions must be empty.",
            "- If dream_text too short, set flags.too_short=true and candidate_directions=[].",
            "- Never interpret meaning, diagnose, or offer therapy language.",
            "Schema:",
            json.dumps(SYNTHESIS_SCHEMA),
        ]
    )


def title_system_prompt() -> str:
    return "\n".join(
        [
            "Adj egy rövid, magyar címet az álomhoz, a KULCSJELENETRE fókuszálva.",
            "Szabályok:",
            "- 2–4 szó (szigorú)",
            "- Kezdődjön nagybetűvel",
            "- Ne legyen mondat, ne legyen magyarázat",
            "- Ne legyen értelmezés/diagnózis",
            "- Tiltott generikus címek: Álom, Álomjelenet, Jelenet, Álomnapló",
            "- Lehetőleg: 1 akció/állapot + 1 konkrét horgony (hely/objektum/szereplő) az anchors mezőből",
            f"Formátum: {json.dumps(TITLE_SCHEMA)}",
        ]
    )


def anchor_summary_system_prompt(limit: int) -> str:
    return (
        "Magyar nyelvű, tömör, szó szerinti horgony-összefoglalót írsz álmokhoz indexeléshez. "
        "Nem értelmezel, nem magyarázol, nem diagnosztizálsz. "
        f"Max {limit} karakter. Csak megfigyelhető elemek: szereplők, helyek, tárgyak, "
        "jelenetváltások, kifejezett érzelemszavak. Kimenet: csak sima szöveg."
    )


RECOMMENDATION_SCHEMA = {"recommended_directions": [{"slug": "", "reason": ""}]}


def framing_system_prompt() -> str:
    return "\n".join(
        [
            "Feladat: rövid, támogató keretezés egy nyers álomleírásra.",
            "Követelmények:",
            "- 2–5 mondat, magyar nyelven",
            "- Ne adj diagnózist, ne mondd meg „mit jelent” az álom",
            "- Tükrözz vissza 1–2 konkrét, feltűnő elemet vagy helyzetet az álomból",
            "- Engedj meg 1 óvatos, feltételes fókuszt, de csak hipotetikusan",
            "- Hangnem: nyugodt, jelenlévő, nem túl általános",
            "",
            "Csak a keretező szöveget add vissza, semmi mást.",
        ]
    )


def direction_pick_system_prompt() -> str:
    return "\n".join(
        [
            "Feladat: válassz ki pontosan 3 releváns irányt a megadott katalógusból egy nyers álom alapján.",
            "Szabályok:",
            "- Csak a megadott slugokat használd.",
            "- Pontosan 3 különböző elemet adj vissza, mindegyikhez rövid indoklással.",
            "- Ne tulajdoníts jelentést az álomnak, ne diagnosztizálj.",
            f"Formátum: {json.dumps(RECOMMENDATION_SCHEMA)}",
        ]
    )
