"""Safety gate: keyword detection of self-harm and reality-confusion signals.

Plain substring markers, no scoring.
"""

from typing import Any, Optional

from schemas import SafetyValue


SELF_HARM_MARKERS = (
    "suicide",
    "kill myself",
    "end my life",
    "want to die",
    "hurt myself",
    "öngyilk",
    "megölöm magam",
    "véget vetek",
    "nem akarok élni",
    "bántani magam",
)

REALITY_CONFUSION_MARKERS = (
    "not real",
    "can't tell what's real",
    "cannot tell what is real",
    "hallucinat",
    "nem valós",
    "nem tudom mi a valós",
    "realitás",
)


def detect_safety(text: str) -> SafetyValue:
    lowered = (text or "").lower()
    if any(marker in lowered for marker in SELF_HARM_MARKERS):
        return SafetyValue.SELF_HARM
    if any(marker in lowered for marker in REALITY_CONFUSION_MARKERS):
        return SafetyValue.REALITY_CONFUSION
    return SafetyValue.NONE


def sanitize_safety_flag(value: Any, default: SafetyValue = SafetyValue.OTHER) -> SafetyValue:
    """Map an untrusted flag to a SafetyValue.

    Missing means ``none``; anything present but unknown maps to *default*.
    """
    if value is None:
        return SafetyValue.NONE
    if isinstance(value, str):
        value = value.strip().lower()
    try:
        return SafetyValue(value)
    except (ValueError, TypeError):
        return default


def caller_safety_flag(synth: Optional[dict]) -> SafetyValue:
    flags = synth.get("flags") if isinstance(synth, dict) else None
    raw = flags.get("safety") if isinstance(flags, dict) else None
    return sanitize_safety_flag(raw)


def resolve_safety(caller_flag: SafetyValue, text: str) -> SafetyValue:
    # Either source flagging wins; the caller's label is kept verbatim.
    if caller_flag != SafetyValue.NONE:
        return caller_flag
    return detect_safety(text)


def is_unsafe(value: SafetyValue) -> bool:
    return value != SafetyValue.NONE
