from __future__ import annotations

import asyncio
import logging
import os

import requests

logger = logging.getLogger(__name__)

MAP_SYSTEM_PROMPT = (
    "You design floor plans and regional maps for a roleplay session. "
    "Follow the requested output format exactly. "
    "Do not include commentary or markdown."
)


class LLMClientError(RuntimeError):
    pass


class OllamaClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or "http://localhost:11434").rstrip(
            "/"
        )
        self.model = model or os.getenv("OLLAMA_MODEL") or "gpt-oss:20b"
        if timeout is None:
            timeout = int(os.getenv("OLLAMA_TIMEOUT", "60"))
        self.timeout = timeout

    def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        return self._chat(
            messages=_map_messages(prompt),
            temperature=temperature,
            format="json" if json_mode else None,
        )

    async def agenerate(self, prompt: str) -> str:
        return await asyncio.to_thread(self.generate_text, prompt)

    def _chat(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float,
        format: str | None = None,
    ) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if format:
            payload["format"] = format
        logger.debug("POST %s model=%s", url, self.model)
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        message = data.get("message", {})
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMClientError("Invalid response from Ollama.")
        return content


def _map_messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": MAP_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
