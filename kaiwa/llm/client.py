"""Language-model client -- the opaque generate(prompt) -> str collaborator.

Supports three HTTP payload styles plus an offline mode:
    openai     OpenAI-compatible /v1/chat/completions
    dashscope  DashScope (Qwen) text-generation API
    ollama     local Ollama /api/generate
    offline    no network; short rule-based reply

The client makes exactly one request per call. It never retries and raises
LLMError on any failure so the caller can degrade the response.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Callable

from kaiwa.llm.prompt import SYSTEM_PROMPT
from kaiwa.log import logger

_MAX_RESPONSE_BYTES = 4 * 1024 * 1024  # 4 MB

DEFAULT_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "dashscope": "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation",
    "ollama": "http://localhost:11434/api/generate",
}


class LLMError(RuntimeError):
    """Transport, HTTP, or payload failure from the language-model provider."""


# ---------------------------------------------------------------------------
# Provider payloads: (build request body, extract text from response)
# ---------------------------------------------------------------------------

def _openai_body(client: LLMClient, prompt: str) -> dict:
    return {
        "model": client.model,
        "max_tokens": client.max_tokens,
        "temperature": client.temperature,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
    }


def _openai_text(data: dict) -> str:
    return data["choices"][0]["message"]["content"]


def _dashscope_body(client: LLMClient, prompt: str) -> dict:
    return {
        "model": client.model,
        "input": {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        },
        "parameters": {
            "max_tokens": client.max_tokens,
            "temperature": client.temperature,
            "top_p": client.top_p,
        },
    }


def _dashscope_text(data: dict) -> str:
    output = data["output"]
    if "text" in output:
        return output["text"]
    return output["choices"][0]["message"]["content"]


def _ollama_body(client: LLMClient, prompt: str) -> dict:
    return {
        "model": client.model,
        "system": SYSTEM_PROMPT,
        "prompt": prompt,
        "stream": False,
        "options": {
            "temperature": client.temperature,
            "top_p": client.top_p,
            "num_predict": client.max_tokens,
        },
    }


def _ollama_text(data: dict) -> str:
    return data["response"]


_PROVIDERS: dict[str, tuple[Callable[[Any, str], dict], Callable[[dict], str]]] = {
    "openai": (_openai_body, _openai_text),
    "dashscope": (_dashscope_body, _dashscope_text),
    "ollama": (_ollama_body, _ollama_text),
}


def offline_reply(prompt: str) -> str:
    """Deterministic reply used when no provider is configured."""
    if "System Context and Available Data:" in prompt:
        return "Here's what I found in the current system data."
    return "I don't have any system data for this question yet. Attach system context and ask again."


class LLMClient:
    """Configured provider client. Call it (or .generate) with a prompt string."""

    def __init__(
        self,
        provider: str = "offline",
        model: str = "",
        api_key: str = "",
        url: str = "",
        max_tokens: int = 2048,
        temperature: float = 0.7,
        top_p: float = 0.8,
        timeout: float = 30,
    ) -> None:
        provider = (provider or "offline").lower()
        if provider != "offline" and provider not in _PROVIDERS:
            raise ValueError(f"Unsupported LLM provider: {provider}")
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.url = url or DEFAULT_URLS.get(provider, "")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.timeout = max(1.0, float(timeout))

    @classmethod
    def from_config(cls) -> "LLMClient":
        from kaiwa.config.loader import get_llm_config
        cfg = get_llm_config()
        return cls(
            provider=cfg.get("provider", "offline"),
            model=cfg.get("model", ""),
            api_key=cfg.get("api_key", ""),
            url=cfg.get("url", ""),
            max_tokens=int(cfg.get("max_tokens", 2048)),
            temperature=float(cfg.get("temperature", 0.7)),
            top_p=float(cfg.get("top_p", 0.8)),
            timeout=float(cfg.get("timeout_seconds", 30)),
        )

    def __call__(self, prompt: str) -> str:
        return self.generate(prompt)

    def generate(self, prompt: str) -> str:
        if self.provider == "offline":
            return offline_reply(prompt)

        build_body, extract_text = _PROVIDERS[self.provider]
        data = self._post_json(build_body(self, prompt))
        try:
            text = extract_text(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"Invalid response from {self.provider} API") from exc
        if not isinstance(text, str):
            raise LLMError(f"Invalid response from {self.provider} API")
        return text

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": "kaiwa/0.1.0"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post_json(self, body: dict) -> dict:
        if not self.url:
            raise LLMError(f"No URL configured for provider {self.provider}")
        req = urllib.request.Request(
            self.url,
            data=json.dumps(body).encode("utf-8"),
            headers=self._headers(),
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read(_MAX_RESPONSE_BYTES)
        except urllib.error.HTTPError as exc:
            logger.warning("%s API returned HTTP %s", self.provider, exc.code)
            raise LLMError(f"{self.provider} API returned HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            logger.warning("%s API unreachable: %s", self.provider, exc)
            raise LLMError(f"{self.provider} API unreachable: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LLMError(f"Invalid JSON from {self.provider} API") from exc
        if not isinstance(data, dict):
            raise LLMError(f"Invalid response from {self.provider} API")
        return data
