import asyncio
import json

import pytest

from card_engine import CardEngine
from engine_config import EngineConfig
from prompts import synthesis_system_prompt


DREAM = (
    "Egy régi házban jártam, a folyosó végén egy vörös ajtó állt, "
    "mögötte a nagymamám kertje volt, tele kék virágokkal."
)

DIRECTION = {
    "slug": "jelenet-reszletezes",
    "title": "Jelenet részletezése",
    "content": {
        "micro_description": "Egy jelenet lassú végigjárása.",
        "method_spec": {"question_style": "sensory_probe_single"},
        "focus_model": {"primary": "objects"},
        "output_spec": {"cta": "optional"},
        "safety": {"escalate_on": ["self_harm"]},
        "stop_criteria": {"max_cards": 6, "stop_if_repetition_detected": True},
    },
}


def card_json(question, lead_in="Maradjunk még egy kicsit ennél a képnél.", safety="none", **extra):
    body = {
        "work_block": {"lead_in": lead_in, "question": question, "cta": None},
        "stop_signal": {"suggest_stop": False, "reason": None},
        "flags": {"safety": safety},
    }
    body.update(extra)
    return json.dumps(body, ensure_ascii=False)


class FakeModel:
    """Scripted stand-in for the model client.

    Each call pops the next scripted reply. An Exception instance is raised
    instead of returned; a coroutine function is awaited for its reply.
    Synthesis prompts are answered from ``synthesis_reply`` so a detached
    refresh never consumes the card script.
    """

    def __init__(self, replies=None, synthesis_reply=None):
        self.replies = list(replies or [])
        self.synthesis_reply = synthesis_reply
        self.calls = []
        self.synthesis_calls = []

    async def __call__(self, system_prompt, payload):
        if self.synthesis_reply is not None and system_prompt == synthesis_system_prompt():
            self.synthesis_calls.append(payload)
            return self.synthesis_reply
        self.calls.append((system_prompt, payload))
        if not self.replies:
            raise AssertionError("unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return await reply()
        return reply


class FakeEmbedder:
    """Scripted embedding client; replies follow the FakeModel conventions."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    async def __call__(self, text):
        self.calls.append(text)
        if not self.replies:
            raise AssertionError("unexpected embedding call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return await reply()
        return reply


@pytest.fixture(autouse=True)
def no_telemetry(monkeypatch):
    monkeypatch.setenv("CARD_TELEMETRY_ENABLED", "0")


@pytest.fixture
def config():
    return EngineConfig(side_synthesis_enabled=False)


@pytest.fixture
def make_engine(config):
    def _make(replies=None, text_replies=None, engine_config=None, synthesis_reply=None, embeddings=None):
        model = FakeModel(replies, synthesis_reply=synthesis_reply)
        text_model = FakeModel(text_replies)
        embedder = FakeEmbedder(embeddings) if embeddings is not None else None
        engine = CardEngine(engine_config or config, model, text_model, embedder)
        return engine, model, text_model

    return _make


def run(coro):
    return asyncio.run(coro)
