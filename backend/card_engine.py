"""Card orchestrator: turns untrusted model output into the next dialogue card.

Per request, strictly in order:
1. required inputs (dream text, direction, session id), else InputError;
2. caller safety flag, then the local classifier: either one closes with "safety";
3. stop criteria: closes with the rule's reason;
4. one model call on a reduced direction view, sanitized (failure is fatal);
5. novelty guard with at most one regeneration, then a low-novelty closure.

No closure path calls the model. A synthesis refresh may run detached next to
steps 4-5; nothing waits on it.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from direction_selector import DirectionSelector
from engine_config import EngineConfig
from errors import CardEngineError, InputError, ModelCallError, ModelOutputError
from llm_service import is_llm_error, parse_llm_error
from novelty import NoveltyAttempt, NoveltyGuard
from prompts import (
    anchor_summary_system_prompt,
    card_system_prompt,
    direction_pick_system_prompt,
    framing_system_prompt,
    synthesis_system_prompt,
)
from request_inputs import (
    catalog_slugs,
    clamp_history,
    clamp_prior_echoes,
    clean_allowed_slugs,
    reduce_catalog_for_model,
    reduce_catalog_for_pick,
    reduce_direction_for_model,
    resolve_direction,
    valid_history_items,
)
from safety import caller_safety_flag, detect_safety, is_unsafe, resolve_safety, sanitize_safety_flag
from sanitizer import (
    parse_model_json,
    sanitize_anchor_summary,
    sanitize_synthesis,
    sanitize_work_block,
    validate_recommendations,
)
from schemas import (
    CardFlags,
    CardResponse,
    FramingRequest,
    FramingResponse,
    IndexSummaryRequest,
    IndexSummaryResponse,
    NextCardRequest,
    RecommendedDirection,
    RecommendRequest,
    RecommendResponse,
    SafetyValue,
    StopSignal,
    SynthesisFlags,
    SynthesisResponse,
    SynthesizeRequest,
    TitleRequest,
    TitleResponse,
    WorkBlock,
)
from side_tasks import DetachedTasks
from stop_criteria import StopCriteriaEvaluator
from telemetry import append_card_telemetry
from text_utils import clamp_text
from titles import TitleGenerator


REASON_SAFETY = "safety"
REASON_LOW_NOVELTY = "low_novelty"

# (system prompt, JSON payload) -> raw model text or an error sentinel
JsonGenerate = Callable[[str, dict], Awaitable[str]]
# (system prompt, user prompt) -> raw model text or an error sentinel
TextGenerate = Callable[[str, str], Awaitable[str]]
# text -> embedding vector or an error sentinel
Embed = Callable[[str], Awaitable[Union[list[float], str]]]


class CardEngine:
    def __init__(
        self,
        config: EngineConfig,
        generate_json: JsonGenerate,
        generate_text: Optional[TextGenerate] = None,
        embed: Optional[Embed] = None,
    ):
        self.config = config
        self.generate_json = generate_json
        self.generate_text = generate_text
        self.embed = embed
        self.stop_evaluator = StopCriteriaEvaluator(config)
        self.novelty = NoveltyGuard(config)
        self.selector = DirectionSelector(config)
        self.titles = TitleGenerator(config, self._call_json)
        self.side_tasks = DetachedTasks()

    # ------------------------------------------------------------------
    # model calls
    # ------------------------------------------------------------------
    async def _guarded_call(self, stage: str, call: Awaitable[str]) -> str:
        try:
            raw = await asyncio.wait_for(call, timeout=self.config.model_timeout_sec)
        except asyncio.TimeoutError:
            append_card_telemetry("model_error", {"stage": stage, "type": "timeout"})
            raise ModelCallError("Model call timed out")
        except CardEngineError:
            raise
        except Exception as exc:
            append_card_telemetry("model_error", {"stage": stage, "type": "exception", "detail": str(exc)[:200]})
            raise ModelCallError(f"Model call failed: {exc}") from exc
        if is_llm_error(raw):
            err = parse_llm_error(raw)
            append_card_telemetry("model_error", {"stage": stage, **err})
            raise ModelCallError(f"Model call failed: {err.get('type', 'unknown')}")
        return raw or ""

    async def _call_json(self, system_prompt: str, payload: dict, stage: str = "title") -> str:
        return await self._guarded_call(stage, self.generate_json(system_prompt, payload))

    # ------------------------------------------------------------------
    # cards
    # ------------------------------------------------------------------
    def closure(self, reason: str, safety: SafetyValue = SafetyValue.NONE) -> CardResponse:
        if reason == REASON_LOW_NOVELTY:
            lead_in, question = self.config.low_novelty_lead_in, self.config.low_novelty_question
        else:
            lead_in, question = self.config.closure_lead_in, self.config.closure_question
        append_card_telemetry("card_closure", {"reason": reason, "safety": safety.value})
        return CardResponse(
            work_block=WorkBlock(
                lead_in=lead_in[: self.config.lead_in_limit],
                question=question[: self.config.question_limit],
                cta=None,
            ),
            stop_signal=StopSignal(suggest_stop=True, reason=reason),
            flags=CardFlags(safety=safety),
        )

    async def next_card(self, request: NextCardRequest) -> CardResponse:
        dream_text = (request.dream_text or "").strip()
        if not dream_text:
            raise InputError("Missing dream_text")
        direction = resolve_direction(request.direction)
        if direction is None:
            raise InputError("Missing direction")
        session_id = (request.session_id or "").strip()
        if not session_id:
            raise InputError("Missing session_id")

        caller_flag = caller_safety_flag(request.synth)
        if is_unsafe(caller_flag):
            return self.closure(REASON_SAFETY, caller_flag)
        local_flag = detect_safety(dream_text)
        if is_unsafe(local_flag):
            return self.closure(REASON_SAFETY, local_flag)

        all_history = valid_history_items(request.history)
        history = all_history[-self.config.max_history :]
        turn_count = len(all_history)
        if isinstance(request.card_count, int) and request.card_count > turn_count:
            turn_count = request.card_count
        stop = self.stop_evaluator.evaluate(direction.stop_criteria, history, turn_count)
        if stop.suggest_stop:
            return self.closure(stop.reason or "", SafetyValue.NONE)

        prior_echoes = clamp_prior_echoes(request.prior_echoes, self.config)
        allowed = clean_allowed_slugs(request.allowed_slugs, self.config, fallback_slug=direction.slug)

        if self.config.side_synthesis_enabled and allowed:
            side_request = SynthesizeRequest(
                session_id=session_id,
                dream_text=dream_text,
                history=[h.model_dump() for h in history],
                prior_echoes=[p.model_dump() for p in prior_echoes],
                allowed_slugs=allowed,
            )
            self.side_tasks.dispatch("side_synthesis", lambda: self._side_synthesis(side_request))

        base_payload = {
            "dream_text": dream_text,
            "direction": reduce_direction_for_model(direction),
            "history": [h.model_dump() for h in history],
            "prior_echoes": [p.model_dump() for p in prior_echoes],
        }
        system_prompt = card_system_prompt(
            self.config.lead_in_limit, self.config.question_limit, self.config.cta_limit
        )

        async def produce(attempt: NoveltyAttempt, forbidden: list[str]) -> CardResponse:
            payload = dict(base_payload)
            if attempt == NoveltyAttempt.RETRY:
                payload["novelty_retry"] = self.novelty.retry_instruction(forbidden)
                append_card_telemetry("novelty_retry", {"session_id": session_id, "forbidden": len(forbidden)})
            raw = await self._call_json(system_prompt, payload, stage=f"card_{attempt.value}")
            parsed = parse_model_json(raw)
            if parsed is None:
                raise ModelOutputError("Invalid JSON from model")
            card = sanitize_work_block(parsed, self.config)
            if card is None:
                raise ModelOutputError("Invalid model output")
            return card

        outcome = await self.novelty.run(produce, [h.question for h in history])
        if outcome.card is None:
            return self.closure(REASON_LOW_NOVELTY, SafetyValue.NONE)

        card = outcome.card
        if is_unsafe(card.flags.safety):
            return self.closure(REASON_SAFETY, card.flags.safety)

        append_card_telemetry(
            "card_issued",
            {"session_id": session_id, "direction": direction.slug, "attempt": outcome.attempt.value},
        )
        return card

    async def _side_synthesis(self, request: SynthesizeRequest) -> dict:
        result = await self.synthesize(request)
        return {
            "session_id": request.session_id,
            "candidates": len(result.candidate_directions),
            "safety": result.flags.safety.value,
            "too_short": result.flags.too_short,
        }

    # ------------------------------------------------------------------
    # synthesis and recommendation
    # ------------------------------------------------------------------
    async def synthesize(self, request: SynthesizeRequest) -> SynthesisResponse:
        dream_text = (request.dream_text or "").strip()
        if not dream_text:
            raise InputError("Missing dream_text")
        if len(dream_text) < self.config.min_narrative_length:
            return SynthesisResponse(flags=SynthesisFlags(too_short=True))
        detected = detect_safety(dream_text)
        if is_unsafe(detected):
            return SynthesisResponse(flags=SynthesisFlags(safety=detected))

        allowed = clean_allowed_slugs(request.allowed_slugs, self.config)
        history = clamp_history(request.history, self.config)
        prior_echoes = clamp_prior_echoes(request.prior_echoes, self.config)
        payload = {
            "dream_text": dream_text,
            "history": [h.model_dump() for h in history],
            "prior_echoes": [p.model_dump() for p in prior_echoes],
            "catalog": reduce_catalog_for_model(request.catalog),
            "allowed_slugs": allowed,
        }
        raw = await self._call_json(synthesis_system_prompt(), payload, stage="synthesis")
        parsed = parse_model_json(raw)
        if parsed is None:
            raise ModelOutputError("Invalid JSON from model")

        output = sanitize_synthesis(
            parsed, allowed, False, [p.session_id for p in prior_echoes], self.config
        )
        output.candidate_directions = self.selector.select_candidates(
            output.candidate_directions, allowed, output.flags
        )
        append_card_telemetry(
            "synthesis_done",
            {
                "session_id": request.session_id,
                "candidates": len(output.candidate_directions),
                "safety": output.flags.safety.value,
            },
        )
        return output

    async def recommend(self, request: RecommendRequest) -> RecommendResponse:
        allowed = clean_allowed_slugs(request.allowed_slugs, self.config)
        max_recs = request.max_recs if request.max_recs and request.max_recs > 0 else self.config.max_recommendations
        dream_text = (request.dream_text or "").strip()

        if isinstance(request.synth, dict):
            raw_flags = request.synth.get("flags") if isinstance(request.synth.get("flags"), dict) else {}
            safety = sanitize_safety_flag(raw_flags.get("safety"))
            if dream_text:
                safety = resolve_safety(safety, dream_text)
            flags = SynthesisFlags(safety=safety, too_short=raw_flags.get("too_short") is True)
            candidates = request.synth.get("candidate_directions")
        elif dream_text:
            synth = await self.synthesize(SynthesizeRequest(dream_text=dream_text, allowed_slugs=allowed))
            flags = synth.flags
            candidates = synth.candidate_directions
        else:
            raise InputError("Missing synth")

        return self.selector.recommend(candidates, allowed, flags, max_recs)

    # ------------------------------------------------------------------
    # framing
    # ------------------------------------------------------------------
    async def frame(self, request: FramingRequest) -> FramingResponse:
        """Supportive framing for a raw narrative plus three picked directions.

        Short narratives get fixed copy and the deterministic fallback without
        a model call. An empty framing from the model is fatal; a failed or
        invalid pick only degrades to the fallback.
        """
        dream_text = (request.dream_text or "").strip()
        if not dream_text:
            raise InputError("Missing dream_text")
        allowed = clean_allowed_slugs(request.allowed_slugs, self.config)
        if not allowed:
            allowed = clean_allowed_slugs(catalog_slugs(request.catalog), self.config)

        detected = detect_safety(dream_text)
        if is_unsafe(detected):
            append_card_telemetry("framing_done", {"session_id": request.session_id, "mode": "safety"})
            return FramingResponse(
                framing=self.config.safety_framing_text,
                flags=SynthesisFlags(safety=detected),
            )

        if len(dream_text) < self.config.min_narrative_length:
            append_card_telemetry("framing_done", {"session_id": request.session_id, "mode": "too_short"})
            return FramingResponse(
                framing=self.config.short_framing_text,
                recommended_directions=self.selector.fallback_recommendations(allowed),
                flags=SynthesisFlags(too_short=True),
            )

        framing = (request.existing_framing or "").strip()
        if not framing:
            framing = await self.generate_framing(dream_text)

        recommendations = await self._pick_directions(dream_text, framing, request.catalog, allowed)
        append_card_telemetry(
            "framing_done",
            {
                "session_id": request.session_id,
                "mode": "model" if recommendations is not None else "fallback",
                "reused_framing": bool((request.existing_framing or "").strip()),
            },
        )
        if recommendations is None:
            recommendations = self.selector.fallback_recommendations(allowed)
        return FramingResponse(framing=framing, recommended_directions=recommendations)

    async def generate_framing(self, dream_text: str) -> str:
        if self.generate_text is None:
            raise ModelCallError("Text generation is not configured")
        raw = await self._guarded_call("framing", self.generate_text(framing_system_prompt(), dream_text))
        framing = clamp_text(raw.strip(), self.config.framing_limit)
        if not framing:
            raise ModelCallError("Empty framing")
        return framing

    async def _pick_directions(
        self, dream_text: str, framing: str, catalog: Any, allowed: list[str]
    ) -> Optional[list[RecommendedDirection]]:
        if len(allowed) < self.config.max_recommendations:
            return None
        payload = {
            "dream_text": dream_text,
            "framing": framing,
            "catalog": reduce_catalog_for_pick(catalog, allowed),
        }
        try:
            raw = await self._call_json(direction_pick_system_prompt(), payload, stage="direction_pick")
        except ModelCallError:
            return None
        parsed = parse_model_json(raw)
        if parsed is None:
            return None
        return validate_recommendations(
            parsed.get("recommended_directions"), allowed, self.config, self.config.max_recommendations
        )

    # ------------------------------------------------------------------
    # enrichment
    # ------------------------------------------------------------------
    async def generate_title(self, request: TitleRequest) -> TitleResponse:
        dream_text = (request.dream_text or "").strip()
        framing = (request.framing_text or "").strip()
        if not dream_text and not framing:
            raise InputError("Missing dream_text")
        title = await self.titles.generate(
            dream_text or framing,
            framing_text=framing,
            anchors=request.anchors,
            existing_title=request.existing_title,
        )
        return TitleResponse(title=title)

    async def index_summary(self, request: IndexSummaryRequest) -> IndexSummaryResponse:
        dream_text = (request.dream_text or "").strip()
        if not dream_text:
            raise InputError("Missing dream_text")
        if len(dream_text) < self.config.min_narrative_length:
            return IndexSummaryResponse(anchor_summary="", too_short=True)
        if self.generate_text is None:
            raise ModelCallError("Text generation is not configured")
        raw = await self._guarded_call(
            "index_summary",
            self.generate_text(anchor_summary_system_prompt(self.config.anchor_summary_limit), dream_text),
        )
        summary = sanitize_anchor_summary(raw, self.config)
        embedding = await self._embed(summary) if summary else None
        return IndexSummaryResponse(anchor_summary=summary, embedding=embedding)

    async def _embed(self, text: str) -> Optional[list[float]]:
        """Best effort: any failure is logged and yields ``None``."""
        if self.embed is None:
            return None
        try:
            result = await asyncio.wait_for(self.embed(text), timeout=self.config.model_timeout_sec)
        except asyncio.TimeoutError:
            append_card_telemetry("embedding_failed", {"type": "timeout"})
            return None
        except Exception as exc:
            append_card_telemetry("embedding_failed", {"type": "exception", "detail": str(exc)[:200]})
            return None
        if isinstance(result, str):
            append_card_telemetry("embedding_failed", parse_llm_error(result) or {"type": "bad_response"})
            return None
        if not isinstance(result, list) or not result:
            append_card_telemetry("embedding_failed", {"type": "bad_response"})
            return None
        return result
