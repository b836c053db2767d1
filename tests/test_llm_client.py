"""Tests for the language-model client. Network calls are patched out."""

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from kaiwa.llm.client import LLMClient, LLMError, offline_reply


def _fake_response(payload):
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


def test_unsupported_provider():
    with pytest.raises(ValueError):
        LLMClient(provider="carrier-pigeon")


def test_offline_reply_mentions_context():
    assert "system data" in offline_reply("System Context and Available Data:\nstatus: ok")
    assert offline_reply("User Query: hi") != offline_reply("System Context and Available Data:\n")


def test_offline_client_makes_no_request():
    with patch("urllib.request.urlopen") as urlopen:
        text = LLMClient(provider="offline")("User Query: hi")
    urlopen.assert_not_called()
    assert isinstance(text, str)


def test_default_url_per_provider():
    assert "dashscope" in LLMClient(provider="dashscope").url
    assert LLMClient(provider="ollama").url.endswith("/api/generate")
    assert LLMClient(provider="openai", url="http://local/v1").url == "http://local/v1"


def test_openai_request_and_parse():
    client = LLMClient(provider="openai", model="m1", api_key="sk-test", max_tokens=64)
    payload = {"choices": [{"message": {"content": "hello"}}]}
    with patch("urllib.request.urlopen", return_value=_fake_response(payload)) as urlopen:
        assert client.generate("prompt text") == "hello"

    req = urlopen.call_args[0][0]
    body = json.loads(req.data)
    assert body["model"] == "m1"
    assert body["max_tokens"] == 64
    assert body["messages"][-1] == {"role": "user", "content": "prompt text"}
    assert req.get_header("Authorization") == "Bearer sk-test"


def test_dashscope_parses_text_and_choices():
    client = LLMClient(provider="dashscope", model="qwen-turbo", api_key="k")
    with patch("urllib.request.urlopen", return_value=_fake_response({"output": {"text": "a"}})):
        assert client.generate("p") == "a"
    choices = {"output": {"choices": [{"message": {"content": "b"}}]}}
    with patch("urllib.request.urlopen", return_value=_fake_response(choices)):
        assert client.generate("p") == "b"


def test_ollama_request():
    client = LLMClient(provider="ollama", model="llama3")
    with patch("urllib.request.urlopen", return_value=_fake_response({"response": "hi"})) as urlopen:
        assert client("p") == "hi"
    body = json.loads(urlopen.call_args[0][0].data)
    assert body["stream"] is False
    assert body["prompt"] == "p"
    assert urlopen.call_args[0][0].get_header("Authorization") is None


def test_http_error_raises_llm_error():
    client = LLMClient(provider="openai", api_key="k")
    err = urllib.error.HTTPError(client.url, 429, "Too Many Requests", {}, io.BytesIO(b""))
    with patch("urllib.request.urlopen", side_effect=err):
        with pytest.raises(LLMError, match="429"):
            client.generate("p")


def test_unreachable_raises_llm_error():
    client = LLMClient(provider="ollama")
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
        with pytest.raises(LLMError, match="unreachable"):
            client.generate("p")


def test_malformed_payload_raises_llm_error():
    client = LLMClient(provider="openai", api_key="k")
    with patch("urllib.request.urlopen", return_value=_fake_response({"unexpected": True})):
        with pytest.raises(LLMError, match="Invalid response"):
            client.generate("p")


def test_invalid_json_raises_llm_error():
    client = LLMClient(provider="ollama")
    resp = _fake_response({})
    resp.read.return_value = b"<html>oops</html>"
    with patch("urllib.request.urlopen", return_value=resp):
        with pytest.raises(LLMError, match="Invalid JSON"):
            client.generate("p")


def test_from_config(monkeypatch):
    from kaiwa.config.loader import reset_config
    monkeypatch.setenv("KAIWA_LLM_PROVIDER", "ollama")
    monkeypatch.setenv("KAIWA_LLM_MODEL", "mistral")
    reset_config()
    try:
        client = LLMClient.from_config()
        assert client.provider == "ollama"
        assert client.model == "mistral"
    finally:
        monkeypatch.setenv("KAIWA_LLM_PROVIDER", "offline")
        reset_config()
