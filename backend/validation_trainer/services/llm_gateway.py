from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

import httpx

from validation_trainer.core.config import settings
from validation_trainer.core.errors import LlmUnavailableError
from validation_trainer.services.streaming import PROVIDER_DONE_SENTINEL, aiter_sse_data

logger = logging.getLogger("validation.llm")

RETRY_STATUSES = {408, 409, 425, 429, 500, 502, 503, 504}
MAX_ATTEMPTS = 3


def _message_text(content) -> str | None:
    if isinstance(content, str):
        normalized = content.strip()
        return normalized or None
    if isinstance(content, list):
        text_parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                text_value = item.get("text")
                if isinstance(text_value, str):
                    text_parts.append(text_value.strip())
        merged = " ".join(part for part in text_parts if part)
        return merged or None
    return None


def _delta_text(payload: str) -> str | None:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("skipping malformed provider stream event")
        return None
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) and content else None


class LlmGateway:
    """OpenAI-compatible chat, streaming chat and transcription calls."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        transcribe_model: str = "whisper-1",
        transcribe_language: str = "en",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.transcribe_model = transcribe_model
        self.transcribe_language = transcribe_language
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "LlmGateway":
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.openai_base_url,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout_seconds,
            transcribe_model=settings.transcribe_model,
            transcribe_language=settings.transcribe_language,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise LlmUnavailableError("LLM_API_KEY is not configured")
        return {"Authorization": f"Bearer {self.api_key}"}

    def _chat_payload(
        self,
        messages: list[dict],
        *,
        temperature: float | None,
        presence_penalty: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
        stream: bool = False,
    ) -> dict:
        payload: dict = {"model": self.model, "messages": messages}
        # gpt-5 family rejects sampling overrides.
        if not self.model.lower().startswith("gpt-5"):
            if temperature is not None:
                payload["temperature"] = temperature
            if presence_penalty is not None:
                payload["presence_penalty"] = presence_penalty
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if stream:
            payload["stream"] = True
        return payload

    async def complete_chat(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        headers = self._headers()
        url = f"{self.base_url}/chat/completions"
        payload = self._chat_payload(
            messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode
        )

        for attempt in range(MAX_ATTEMPTS):
            try:
                async with self._client() as client:
                    response = await client.post(url, headers=headers, json=payload)
                    if response.status_code in RETRY_STATUSES and attempt < MAX_ATTEMPTS - 1:
                        await asyncio.sleep(0.5 * (attempt + 1))
                        continue

                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPStatusError as exc:
                raise LlmUnavailableError(
                    f"provider returned HTTP {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                if attempt < MAX_ATTEMPTS - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise LlmUnavailableError(f"provider unreachable: {exc}") from exc
            except ValueError as exc:
                raise LlmUnavailableError("provider returned invalid json") from exc

            choices = data.get("choices") if isinstance(data, dict) else None
            if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
                raise LlmUnavailableError("no completion choices returned")
            message = choices[0].get("message")
            text = _message_text(message.get("content") if isinstance(message, dict) else None)
            if text is None:
                raise LlmUnavailableError("completion had no text content")
            return text
        raise LlmUnavailableError("provider kept returning retryable errors")

    async def complete_json(self, messages: list[dict], *, temperature: float | None = None) -> dict:
        text = await self.complete_chat(messages, temperature=temperature, json_mode=True)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LlmUnavailableError("completion was not valid json") from exc
        if not isinstance(data, dict):
            raise LlmUnavailableError("completion json was not an object")
        return data

    async def stream_chat(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        presence_penalty: float | None = None,
    ) -> AsyncIterator[str]:
        """Yield content deltas as the provider produces them."""
        headers = self._headers()
        url = f"{self.base_url}/chat/completions"
        payload = self._chat_payload(
            messages,
            temperature=temperature,
            presence_penalty=presence_penalty,
            stream=True,
        )
        try:
            async with self._client() as client:
                async with client.stream("POST", url, headers=headers, json=payload) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise LlmUnavailableError(
                            f"provider returned HTTP {response.status_code}"
                        )
                    async for data in aiter_sse_data(response.aiter_bytes()):
                        if data.strip() == PROVIDER_DONE_SENTINEL:
                            return
                        delta = _delta_text(data)
                        if delta:
                            yield delta
        except httpx.HTTPError as exc:
            raise LlmUnavailableError(f"provider stream failed: {exc}") from exc

    async def transcribe_audio(
        self, filename: str, content: bytes, content_type: str | None = None
    ) -> str:
        headers = self._headers()
        url = f"{self.base_url}/audio/transcriptions"
        files = {"file": (filename, content, content_type or "audio/webm")}
        data = {"model": self.transcribe_model, "language": self.transcribe_language}
        try:
            async with self._client() as client:
                response = await client.post(url, headers=headers, files=files, data=data)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise LlmUnavailableError(
                f"transcription returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LlmUnavailableError(f"transcription failed: {exc}") from exc
        except ValueError as exc:
            raise LlmUnavailableError("transcription returned invalid json") from exc

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise LlmUnavailableError("transcription had no text")
        return text.strip()
