from llm_service import LLMConfig, LLMService, _llm_error, is_llm_error, parse_llm_error


def test_error_sentinel_round_trip():
    raw = _llm_error("rate_limit", "http=429 | retry later")
    assert is_llm_error(raw)
    assert parse_llm_error(raw) == {"type": "rate_limit", "detail": "http=429 | retry later"}
    assert parse_llm_error('{"title": "x"}') == {}
    assert not is_llm_error("")


def test_openai_payload_uses_json_mode():
    service = LLMService(LLMConfig(provider="openai", api_url="https://api.openai.com/v1/chat/completions"))
    payload = service._build_payload("{}", "rendszer", 0.2, 100, json_mode=True)
    assert payload["messages"][0] == {"role": "system", "content": "rendszer"}
    assert payload["response_format"] == {"type": "json_object"}
    assert service._extract_content({"choices": [{"message": {"content": " {} "}}]}) == "{}"


def test_generic_payload_inlines_system_prompt():
    service = LLMService(LLMConfig(provider="ollama", api_url="http://localhost:11434/api/generate"))
    payload = service._build_payload("kérdés", "rendszer", 0.2, 100, json_mode=True)
    assert payload["prompt"].startswith("rendszer")
    assert payload["format"] == "json"
    assert service._extract_content({"response": " szöveg "}) == "szöveg"


def test_embeddings_url_follows_chat_endpoint():
    service = LLMService(LLMConfig(api_url="https://api.groq.com/openai/v1/chat/completions"))
    assert service._embeddings_url() == "https://api.groq.com/openai/v1/embeddings"
    custom = LLMService(LLMConfig(api_url="http://localhost:11434/api/generate", embeddings_url="http://emb/v1/embeddings"))
    assert custom._embeddings_url() == "http://emb/v1/embeddings"
    assert LLMService(LLMConfig(api_url="http://localhost:11434/api/generate"))._embeddings_url() == (
        "https://api.openai.com/v1/embeddings"
    )


def test_extract_embedding_requires_numeric_vector():
    service = LLMService(LLMConfig())
    assert service._extract_embedding({"data": [{"embedding": [1, 0.5]}]}) == [1.0, 0.5]
    assert service._extract_embedding({"data": [{"embedding": []}]}) is None
    assert service._extract_embedding({"data": [{"embedding": [True, 0.5]}]}) is None
    assert service._extract_embedding({"data": [{"embedding": ["0.1"]}]}) is None
    assert service._extract_embedding({"data": []}) is None
    assert service._extract_embedding(["nope"]) is None
