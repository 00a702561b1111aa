from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SafetyValue(str, Enum):
    NONE = "none"
    SELF_HARM = "self_harm"
    REALITY_CONFUSION = "reality_confusion"
    OTHER = "other"


# Dialogue inputs
class HistoryItem(BaseModel):
    question: str
    answer: Optional[str] = None


class PriorEcho(BaseModel):
    session_id: str
    anchor_summary: str
    created_at: str


# Direction catalog entry, canonical shape
class StopCriteria(BaseModel):
    max_cards: Optional[int] = None
    stop_if_user_brief_streak: Optional[int] = None
    stop_if_repetition_detected: bool = False


class Direction(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str = ""
    title: str = ""
    micro_description: str = ""
    method_spec: dict[str, Any] = Field(default_factory=dict)
    stop_criteria: StopCriteria = Field(default_factory=StopCriteria)
    output_spec: dict[str, Any] = Field(default_factory=dict)
    safety: dict[str, Any] = Field(default_factory=dict)
    focus_model: dict[str, Any] = Field(default_factory=dict)
    selection_hints: dict[str, Any] = Field(default_factory=dict)


# Card output
class WorkBlock(BaseModel):
    lead_in: str
    question: str
    cta: Optional[str] = None


class StopSignal(BaseModel):
    suggest_stop: bool = False
    reason: Optional[str] = None


class CardFlags(BaseModel):
    safety: SafetyValue = SafetyValue.NONE


class CardResponse(BaseModel):
    work_block: WorkBlock
    stop_signal: StopSignal
    flags: CardFlags


# Synthesis output
class Anchors(BaseModel):
    characters: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)
    beats: list[str] = Field(default_factory=list)
    felt_words: list[str] = Field(default_factory=list)


class QuestionSeed(BaseModel):
    preferred_style: str = ""
    target_anchor: str = ""


class PriorEchoUsed(BaseModel):
    session_id: str
    matched_items: list[str] = Field(default_factory=list)


class SynthesisFlags(BaseModel):
    safety: SafetyValue = SafetyValue.NONE
    too_short: bool = False


class SynthesisResponse(BaseModel):
    anchors: Anchors = Field(default_factory=Anchors)
    candidate_directions: list[str] = Field(default_factory=list)
    question_seed: QuestionSeed = Field(default_factory=QuestionSeed)
    prior_echoes_used: list[PriorEchoUsed] = Field(default_factory=list)
    flags: SynthesisFlags = Field(default_factory=SynthesisFlags)


class RecommendResponse(BaseModel):
    slugs: list[str] = Field(default_factory=list)
    flags: SynthesisFlags = Field(default_factory=SynthesisFlags)


# Request bodies. Untrusted containers stay loosely typed; the engine
# validates them item by item.
class NextCardRequest(BaseModel):
    session_id: Optional[str] = None
    dream_text: Optional[str] = None
    direction: Optional[dict[str, Any]] = None
    history: Optional[list[Any]] = None
    prior_echoes: Optional[list[Any]] = None
    synth: Optional[dict[str, Any]] = None
    allowed_slugs: Optional[list[Any]] = None
    card_count: Optional[int] = None


class SynthesizeRequest(BaseModel):
    session_id: Optional[str] = None
    dream_text: Optional[str] = None
    history: Optional[list[Any]] = None
    prior_echoes: Optional[list[Any]] = None
    catalog: Optional[Any] = None
    allowed_slugs: Optional[list[Any]] = None


class RecommendRequest(BaseModel):
    synth: Optional[dict[str, Any]] = None
    dream_text: Optional[str] = None
    allowed_slugs: Optional[list[Any]] = None
    max_recs: Optional[int] = None


class TitleRequest(BaseModel):
    dream_text: Optional[str] = None
    framing_text: Optional[str] = None
    anchors: Optional[dict[str, Any]] = None
    existing_title: Optional[str] = None


class TitleResponse(BaseModel):
    title: str


class IndexSummaryRequest(BaseModel):
    session_id: Optional[str] = None
    dream_text: Optional[str] = None


class IndexSummaryResponse(BaseModel):
    anchor_summary: str
    embedding: Optional[list[float]] = None
    too_short: bool = False


class RecommendedDirection(BaseModel):
    slug: str
    reason: str


class FramingRequest(BaseModel):
    session_id: Optional[str] = None
    dream_text: Optional[str] = None
    existing_framing: Optional[str] = None
    catalog: Optional[Any] = None
    allowed_slugs: Optional[list[Any]] = None


class FramingResponse(BaseModel):
    framing: str
    recommended_directions: list[RecommendedDirection] = Field(default_factory=list)
    flags: SynthesisFlags = Field(default_factory=SynthesisFlags)


class EchoCandidate(BaseModel):
    session_id: str
    created_at: str
    anchor_summary: str = ""
    embedding: Optional[list[float]] = None


class PriorEchoSelectRequest(BaseModel):
    session_id: Optional[str] = None
    query_embedding: Optional[list[float]] = None
    candidates: list[EchoCandidate] = Field(default_factory=list)


class PriorEchoSelectResponse(BaseModel):
    prior_echoes: list[PriorEcho]
