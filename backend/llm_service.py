"""
Language-model client used for card, synthesis, title, framing, summary and embedding calls.
"""

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict

from engine_config import _env_float, _env_int


# --------------- LLM Error helpers ---------------
LLM_ERROR_PREFIX = "__LLM_ERR__"


def _llm_error(error_type: str, detail: str = "") -> str:
    """Return a sentinel string indicating an LLM call failure."""
    return f"{LLM_ERROR_PREFIX}{error_type}|{detail}"


def is_llm_error(content: str) -> bool:
    return bool(content) and content.startswith(LLM_ERROR_PREFIX)


def parse_llm_error(content: str) -> dict:
    """Parse an LLM error sentinel into {type, detail}."""
    if not is_llm_error(content):
        return {}
    rest = content[len(LLM_ERROR_PREFIX):]
    parts = rest.split("|", 1)
    return {"type": parts[0], "detail": parts[1] if len(parts) > 1 else ""}


class LLMConfig(BaseModel):
    """Model runtime configuration."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = "gpt-4o-mini"
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    provider: Optional[str] = None  # openai | groq | ollama | generic
    temperature: float = 0.4
    max_tokens: int = 650
    top_p: float = 0.9
    timeout_sec: float = 40.0
    embedding_model: str = "text-embedding-3-small"
    embeddings_url: Optional[str] = None


def load_llm_config() -> LLMConfig:
    return LLMConfig(
        api_url=os.getenv("LLM_API_URL", "https://api.openai.com/v1/chat/completions"),
        api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
        model_name=os.getenv("LLM_MODEL", "gpt-4o-mini"),
        provider=os.getenv("LLM_PROVIDER", "openai"),
        timeout_sec=_env_float("LLM_TIMEOUT_SEC", 40.0, 1.0, 300.0),
        embedding_model=os.getenv("LLM_EMBEDDING_MODEL", "text-embedding-3-small"),
        embeddings_url=os.getenv("LLM_EMBEDDINGS_URL") or None,
    )


class LLMService:
    """Single-attempt model calls with an optional bounded transport retry."""

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or load_llm_config()
        self.call_log_path = os.getenv("LLM_CALL_LOG", "llm_call_log.txt")
        self.max_retry_attempts = max(1, min(3, _env_int("LLM_MAX_RETRY_ATTEMPTS", 1, 1, 3)))
        self.retry_backoff_base_sec = _env_float("LLM_RETRY_BACKOFF_BASE_SEC", 1.0, 0.1, 5.0)

    def _append_call_log(self, stage: str, status: str, detail: str = "") -> None:
        try:
            p = Path(__file__).resolve().parent / self.call_log_path
            p.parent.mkdir(parents=True, exist_ok=True)
            ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            line = f"[{ts}] stage={stage} status={status} model={self.config.model_name} detail={detail}\n"
            with open(p, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError:
            # call log is best effort
            pass

    def _is_openai_compatible(self) -> bool:
        provider = (self.config.provider or "").lower().strip()
        api_url = self.config.api_url or ""
        return (
            provider in ("groq", "openai")
            or "api.groq.com/openai/v1" in api_url
            or "api.openai.com/v1" in api_url
        )

    def _build_payload(
        self,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> dict:
        if self._is_openai_compatible():
            payload: dict[str, Any] = {
                "model": self.config.model_name,
                "messages": [
                    {"role": "system", "content": system_prompt or "You are a helpful assistant."},
                    {"role": "user", "content": prompt},
                ],
                "temperature": temperature,
                "max_tokens": max_tokens,
                "top_p": self.config.top_p,
            }
            if json_mode:
                payload["response_format"] = {"type": "json_object"}
            return payload

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\nUser: {prompt}\n\nAssistant:"
        payload = {
            "model": self.config.model_name,
            "prompt": full_prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens, "top_p": self.config.top_p},
        }
        if json_mode:
            payload["format"] = "json"
        return payload

    def _extract_content(self, result: Any) -> str:
        if self._is_openai_compatible():
            choices = result.get("choices", []) if isinstance(result, dict) else []
            if choices:
                return (choices[0].get("message", {}).get("content") or "").strip()
            return ""
        if isinstance(result, dict):
            return (result.get("response") or "").strip()
        return str(result).strip()

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """Generate text from the configured provider; failures come back as sentinels."""
        temp = self.config.temperature if temperature is None else temperature
        token_limit = self.config.max_tokens if max_tokens is None else max_tokens
        payload = self._build_payload(prompt, system_prompt, temp, token_limit, json_mode)
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            self._append_call_log("request", "start", f"json_mode={json_mode}")
            async with httpx.AsyncClient(timeout=self.config.timeout_sec) as client:
                for attempt in range(self.max_retry_attempts):
                    response = await client.post(self.config.api_url or "", json=payload, headers=headers)
                    if response.status_code == 200:
                        self._append_call_log("request", "ok", f"attempt={attempt+1} http=200")
                        return self._extract_content(response.json())
                    if response.status_code in (429, 500, 502, 503, 504) and attempt < (self.max_retry_attempts - 1):
                        backoff = self.retry_backoff_base_sec * (attempt + 1)
                        self._append_call_log("request", "retry", f"attempt={attempt+1} http={response.status_code} backoff={backoff:.1f}s")
                        await asyncio.sleep(backoff)
                        continue
                    self._append_call_log("request", "fail", f"attempt={attempt+1} http={response.status_code}")
                    if response.status_code == 429:
                        return _llm_error("rate_limit", f"http=429 after {attempt+1} attempts")
                    return _llm_error("http_error", f"http={response.status_code}")
            return _llm_error("http_error", "no attempts")
        except httpx.TimeoutException as exc:
            self._append_call_log("request", "timeout", str(exc))
            return _llm_error("timeout", str(exc)[:200])
        except (httpx.HTTPError, ValueError) as exc:
            self._append_call_log("request", "error", str(exc))
            return _llm_error("exception", str(exc)[:200])

    async def generate_json(
        self,
        system_prompt: str,
        payload: dict,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Strict-JSON call: the payload goes in as the user message."""
        return await self.generate(
            prompt=json.dumps(payload, ensure_ascii=False),
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )

    async def generate_text(
        self,
        system_prompt: str,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        return await self.generate(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def _embeddings_url(self) -> str:
        if self.config.embeddings_url:
            return self.config.embeddings_url
        api_url = self.config.api_url or ""
        if api_url.endswith("/chat/completions"):
            return api_url[: -len("/chat/completions")] + "/embeddings"
        return "https://api.openai.com/v1/embeddings"

    def _extract_embedding(self, result: Any) -> Optional[list[float]]:
        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        vector = data[0].get("embedding")
        if not isinstance(vector, list) or not vector:
            return None
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector):
            return None
        return [float(x) for x in vector]

    async def embed(self, text: str) -> Union[list[float], str]:
        """Embedding vector for *text*; failures come back as sentinels like generate()."""
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload = {"model": self.config.embedding_model, "input": text}

        try:
            self._append_call_log("embedding", "start", f"chars={len(text)}")
            async with httpx.AsyncClient(timeout=self.config.timeout_sec) as client:
                response = await client.post(self._embeddings_url(), json=payload, headers=headers)
            if response.status_code != 200:
                self._append_call_log("embedding", "fail", f"http={response.status_code}")
                return _llm_error("http_error", f"http={response.status_code}")
            vector = self._extract_embedding(response.json())
            if vector is None:
                self._append_call_log("embedding", "fail", "no vector")
                return _llm_error("bad_response", "no embedding in response")
            self._append_call_log("embedding", "ok", f"dims={len(vector)}")
            return vector
        except httpx.TimeoutException as exc:
            self._append_call_log("embedding", "timeout", str(exc))
            return _llm_error("timeout", str(exc)[:200])
        except (httpx.HTTPError, ValueError) as exc:
            self._append_call_log("embedding", "error", str(exc))
            return _llm_error("exception", str(exc)[:200])


llm_service = LLMService()
