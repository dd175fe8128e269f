from __future__ import annotations

import logging
from typing import Callable, Sequence

import httpx

from validation_trainer.core.errors import StreamError
from validation_trainer.schemas.conversation import (
    ConversationMessage,
    PartnerReplyResponse,
    PartnerRequest,
    TranscriptionResponse,
)
from validation_trainer.schemas.feedback import AiAnalysis, HintResponse, LiveHint
from validation_trainer.schemas.progress import (
    SessionCompleteRequest,
    SessionCompleteResponse,
    UserProgress,
)
from validation_trainer.schemas.scenarios import Scenario, ScenarioGenerateResponse
from validation_trainer.services.streaming import (
    CompleteCallback,
    ErrorCallback,
    StreamOutcome,
    aiter_sse_events,
    arelay_stream,
    fail_stream,
)

logger = logging.getLogger("validation.client")


class TrainerApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code

    @property
    def is_transport(self) -> bool:
        """True for failures a retry or a different input mode could get past."""
        return self.status_code is None or self.status_code >= 500


def _error_message(response: httpx.Response) -> tuple[str, str | None]:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"], body.get("error_code")
    return f"HTTP {response.status_code}", None


class TrainerApiClient:
    """Async client for the trainer HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "TrainerApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.post(path, **kwargs)
        except httpx.HTTPError as exc:
            raise TrainerApiError(f"network error: {exc}") from exc
        if response.status_code >= 400:
            message, error_code = _error_message(response)
            raise TrainerApiError(
                message, status_code=response.status_code, error_code=error_code
            )
        return response

    async def stream_partner_response(
        self,
        request: PartnerRequest,
        on_chunk: Callable[[str], None],
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        on_sentence: Callable[[str], None] | None = None,
    ) -> StreamOutcome:
        """Stream the partner's reply; exactly one of on_complete/on_error fires."""
        payload = request.model_dump(mode="json", by_alias=True)
        try:
            async with self._client.stream(
                "POST", "/api/v1/partner/stream", json=payload
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    message, error_code = _error_message(response)
                    return fail_stream(StreamError(message, detail=error_code), on_error)
                return await arelay_stream(
                    aiter_sse_events(response.aiter_bytes()),
                    on_chunk,
                    on_complete,
                    on_error,
                    on_sentence,
                )
        except httpx.HTTPError as exc:
            logger.warning("partner stream transport failure: %s", exc)
            return fail_stream(StreamError(f"network error: {exc}"), on_error)

    async def generate_partner_response(self, request: PartnerRequest) -> PartnerReplyResponse:
        response = await self._post(
            "/api/v1/partner", json=request.model_dump(mode="json", by_alias=True)
        )
        return PartnerReplyResponse.model_validate(response.json())

    async def analyze(
        self,
        response_text: str,
        scenario: Scenario,
        conversation_context: Sequence[ConversationMessage],
    ) -> AiAnalysis:
        payload = {
            "response": response_text,
            "scenario": scenario.model_dump(mode="json", by_alias=True),
            "conversationContext": [
                m.model_dump(mode="json", by_alias=True) for m in conversation_context
            ],
        }
        response = await self._post("/api/v1/analyze", json=payload)
        return AiAnalysis.model_validate(response.json())

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> str:
        response = await self._post(
            "/api/v1/transcribe", files={"audio": (filename, audio, content_type)}
        )
        return TranscriptionResponse.model_validate(response.json()).transcript

    async def complete_session(self, request: SessionCompleteRequest) -> SessionCompleteResponse:
        response = await self._post(
            "/api/v1/sessions/complete", json=request.model_dump(mode="json", by_alias=True)
        )
        return SessionCompleteResponse.model_validate(response.json())

    async def generate_scenario(self, partner_description: str) -> Scenario:
        response = await self._post(
            "/api/v1/scenarios/generate",
            json={"partnerDescription": partner_description},
        )
        return ScenarioGenerateResponse.model_validate(response.json()).scenario

    async def live_hint(
        self, messages: Sequence[ConversationMessage], current_transcript: str = ""
    ) -> LiveHint | None:
        payload = {
            "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
            "currentTranscript": current_transcript,
        }
        response = await self._post("/api/v1/hints", json=payload)
        return HintResponse.model_validate(response.json()).hint

    async def get_progress(self) -> UserProgress | None:
        try:
            response = await self._client.get("/api/v1/progress")
        except httpx.HTTPError as exc:
            raise TrainerApiError(f"network error: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            message, error_code = _error_message(response)
            raise TrainerApiError(
                message, status_code=response.status_code, error_code=error_code
            )
        return UserProgress.model_validate(response.json())
