import json

import pytest

from conftest import DREAM, run
from errors import InputError, ModelOutputError
from schemas import RecommendRequest, SafetyValue, SynthesizeRequest


def synth_reply(**fields):
    body = {
        "anchors": {"characters": ["nagymama"], "places": ["régi ház", "kert"], "objects": ["vörös ajtó"]},
        "candidate_directions": ["x", "a", "a", "b"],
        "question_seed": {"preferred_style": "sensory_probe_single", "target_anchor": "vörös ajtó"},
        "prior_echoes_used": [],
        "flags": {"safety": "none", "too_short": False},
    }
    body.update(fields)
    return json.dumps(body, ensure_ascii=False)


def test_synthesis_filters_and_backfills_candidates(make_engine):
    engine, model, _ = make_engine([synth_reply()])
    out = run(engine.synthesize(SynthesizeRequest(dream_text=DREAM, allowed_slugs=["a", "b", "c"])))

    assert out.candidate_directions == ["a", "b", "c"]
    assert out.anchors.objects == ["vörös ajtó"]
    assert out.question_seed.preferred_style == "sensory_probe_single"
    assert out.flags.safety == SafetyValue.NONE
    assert len(model.calls) == 1


def test_synthesis_backfill_prefers_keyword_groups(make_engine):
    allowed = ["alap", "elengedes", "testi-lenyomat", "narrativ-ív", "kep"]
    engine, _, _ = make_engine([synth_reply(candidate_directions=["kep"])])
    out = run(engine.synthesize(SynthesizeRequest(dream_text=DREAM, allowed_slugs=allowed)))
    assert out.candidate_directions == ["kep", "narrativ-ív", "testi-lenyomat"]


def test_synthesis_short_text_skips_model(make_engine):
    engine, model, _ = make_engine()
    out = run(engine.synthesize(SynthesizeRequest(dream_text="Repültem.", allowed_slugs=["a"])))
    assert out.flags.too_short is True
    assert out.candidate_directions == []
    assert model.calls == []


def test_synthesis_unsafe_text_skips_model(make_engine):
    engine, model, _ = make_engine()
    text = "Az álom végén azt éreztem, hogy nem tudom mi a valós és mi nem."
    out = run(engine.synthesize(SynthesizeRequest(dream_text=text, allowed_slugs=["a", "b"])))
    assert out.flags.safety == SafetyValue.REALITY_CONFUSION
    assert out.candidate_directions == []
    assert model.calls == []


def test_synthesis_model_safety_empties_candidates(make_engine):
    engine, _, _ = make_engine([synth_reply(flags={"safety": "other"})])
    out = run(engine.synthesize(SynthesizeRequest(dream_text=DREAM, allowed_slugs=["a", "b", "c"])))
    assert out.flags.safety == SafetyValue.OTHER
    assert out.candidate_directions == []


def test_synthesis_keeps_known_prior_echoes_only(make_engine):
    reply = synth_reply(
        prior_echoes_used=[
            {"session_id": "old-1", "matched_items": ["kert", "ajtó", "lépcső"]},
            {"session_id": "ismeretlen", "matched_items": ["kert"]},
        ]
    )
    engine, _, _ = make_engine([reply])
    echoes = [{"session_id": "old-1", "anchor_summary": "kert, ajtó", "created_at": "2026-01-02T10:00:00Z"}]
    out = run(
        engine.synthesize(SynthesizeRequest(dream_text=DREAM, prior_echoes=echoes, allowed_slugs=["a"]))
    )
    assert [e.session_id for e in out.prior_echoes_used] == ["old-1"]
    assert out.prior_echoes_used[0].matched_items == ["kert", "ajtó"]


def test_synthesis_invalid_json_is_fatal(make_engine):
    engine, _, _ = make_engine(["<html>hiba</html>"])
    with pytest.raises(ModelOutputError):
        run(engine.synthesize(SynthesizeRequest(dream_text=DREAM, allowed_slugs=["a"])))


def test_synthesis_requires_dream_text(make_engine):
    engine, _, _ = make_engine()
    with pytest.raises(InputError):
        run(engine.synthesize(SynthesizeRequest(allowed_slugs=["a"])))


def test_recommend_from_supplied_synth_tops_up(make_engine):
    engine, model, _ = make_engine()
    request = RecommendRequest(
        synth={"candidate_directions": ["b", "zzz"], "flags": {"safety": "none"}},
        allowed_slugs=["a", "b", "c", "d"],
    )
    out = run(engine.recommend(request))
    assert out.slugs == ["b", "a", "c"]
    assert model.calls == []


def test_recommend_accepts_slug_objects(make_engine):
    engine, _, _ = make_engine()
    request = RecommendRequest(
        synth={"candidate_directions": [{"slug": "c", "reason": "tárgyak"}, {"slug": "a"}]},
        allowed_slugs=["a", "b", "c"],
        max_recs=2,
    )
    out = run(engine.recommend(request))
    assert out.slugs == ["c", "a"]


def test_recommend_single_slug_fallback(make_engine):
    engine, _, _ = make_engine()
    request = RecommendRequest(synth={"candidate_directions": ["zzz"]}, allowed_slugs=["a", "b"])
    out = run(engine.recommend(request))
    assert out.slugs == ["a"]


def test_recommend_clamps_max_recs(make_engine):
    engine, _, _ = make_engine()
    request = RecommendRequest(
        synth={"candidate_directions": ["a", "b", "c", "d", "e"]},
        allowed_slugs=["a", "b", "c", "d", "e"],
        max_recs=10,
    )
    out = run(engine.recommend(request))
    assert out.slugs == ["a", "b", "c"]


def test_recommend_unsafe_synth_is_empty(make_engine):
    engine, _, _ = make_engine()
    request = RecommendRequest(
        synth={"candidate_directions": ["a"], "flags": {"safety": "self_harm"}},
        allowed_slugs=["a", "b"],
    )
    out = run(engine.recommend(request))
    assert out.slugs == []
    assert out.flags.safety == SafetyValue.SELF_HARM


def test_recommend_local_detection_overrides_clean_synth(make_engine):
    engine, _, _ = make_engine()
    request = RecommendRequest(
        synth={"candidate_directions": ["a"], "flags": {"safety": "none"}},
        dream_text="Arról álmodtam, hogy bántani magam akartam.",
        allowed_slugs=["a", "b"],
    )
    out = run(engine.recommend(request))
    assert out.slugs == []
    assert out.flags.safety == SafetyValue.SELF_HARM


def test_recommend_runs_synthesis_from_narrative(make_engine):
    engine, model, _ = make_engine([synth_reply(candidate_directions=["c"])])
    out = run(engine.recommend(RecommendRequest(dream_text=DREAM, allowed_slugs=["a", "b", "c"])))
    assert out.slugs == ["c", "a", "b"]
    assert len(model.calls) == 1


def test_recommend_short_narrative_is_empty(make_engine):
    engine, model, _ = make_engine()
    out = run(engine.recommend(RecommendRequest(dream_text="Repültem.", allowed_slugs=["a"])))
    assert out.slugs == []
    assert out.flags.too_short is True
    assert model.calls == []


def test_recommend_without_synth_or_text_raises(make_engine):
    engine, _, _ = make_engine()
    with pytest.raises(InputError) as exc:
        run(engine.recommend(RecommendRequest(allowed_slugs=["a"])))
    assert exc.value.message == "Missing synth"
