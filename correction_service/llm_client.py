from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

import httpx

from common.config import CorrectionSettings
from common.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse a JSON object from model output, tolerating prose around it."""
    if not text:
        return None
    trimmed = text.strip()
    try:
        data = json.loads(trimmed)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(trimmed)
        if match is None:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


class ChatClient:
    """Chat-completion client speaking the OpenAI or Ollama wire format.

    Open it once (``async with ChatClient(settings) as client``) and share
    it between pipeline runs; every call returns the reply as a JSON object
    or raises ExternalServiceFailure.
    """

    def __init__(
        self,
        settings: CorrectionSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or CorrectionSettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ChatClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        if self._client is not None:
            return
        headers = {}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        self._client = httpx.AsyncClient(
            timeout=self.settings.request_timeout_s,
            headers=headers,
            transport=self._transport,
        )
        logger.info("Chat client opened (%s at %s)", self.settings.api_style, self.settings.api_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_request(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        model: str,
    ) -> tuple[str, dict[str, Any]]:
        base = self.settings.api_url.rstrip("/")
        if self.settings.api_style == "ollama":
            return f"{base}/api/chat", {
                "model": model,
                "messages": messages,
                "stream": False,
                "options": {
                    "temperature": temperature,
                    "num_predict": self.settings.max_tokens,
                },
                "format": "json",
            }
        return f"{base}/chat/completions", {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": self.settings.max_tokens,
            "response_format": {"type": "json_object"},
        }

    def _message_content(self, data: Any) -> Optional[str]:
        if self.settings.api_style == "ollama":
            return data["message"]["content"]
        return data["choices"][0]["message"]["content"]

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        model: str | None = None,
        phase: str = "chat",
    ) -> dict[str, Any]:
        """Send one chat request and return the assistant reply as a JSON object."""
        if self._client is None:
            raise RuntimeError("ChatClient is not open")

        url, payload = self._build_request(messages, temperature, model or self.settings.model_name)
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceFailure(
                phase, f"request failed ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceFailure(phase, f"request failed: {exc!r}") from exc
        except ValueError as exc:
            raise ExternalServiceFailure(phase, "response body is not JSON") from exc

        try:
            content = self._message_content(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceFailure(phase, "response missing message content") from exc

        result = extract_json(content)
        if result is None:
            logger.debug("Unparseable %s reply: %r", phase, content)
            raise ExternalServiceFailure(phase, "reply is not a JSON object")
        return result
