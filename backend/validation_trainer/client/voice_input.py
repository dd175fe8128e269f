from __future__ import annotations

import logging
from enum import StrEnum
from typing import Awaitable, Callable

from validation_trainer.client.api_client import TrainerApiError
from validation_trainer.core.notifications import NotificationCenter

logger = logging.getLogger("validation.voice")

NETWORK_FAILURE_LIMIT = 2
SWITCHED_TO_TEXT_MESSAGE = (
    "Repeated network issues detected. Switched to text input mode automatically."
)

Transcriber = Callable[[bytes], Awaitable[str]]


class InputMode(StrEnum):
    VOICE = "voice"
    TEXT = "text"


class VoiceInput:
    """Turns recorded audio into text and gives up on voice after repeated network failures."""

    def __init__(
        self,
        transcriber: Transcriber,
        notifications: NotificationCenter,
        *,
        failure_limit: int = NETWORK_FAILURE_LIMIT,
    ) -> None:
        self._transcriber = transcriber
        self._notifications = notifications
        self._failure_limit = max(1, failure_limit)
        self.mode = InputMode.VOICE
        self.network_failures = 0

    def use_voice(self) -> None:
        self.mode = InputMode.VOICE
        self.network_failures = 0

    async def transcribe(self, audio: bytes) -> str | None:
        try:
            transcript = await self._transcriber(audio)
        except TrainerApiError as exc:
            self._record_failure(exc)
            return None

        self.network_failures = 0
        return transcript.strip() or None

    def _record_failure(self, exc: TrainerApiError) -> None:
        logger.warning("transcription failed: %s", exc)
        if exc.is_transport:
            self.network_failures += 1
            if self.network_failures >= self._failure_limit and self.mode == InputMode.VOICE:
                self.mode = InputMode.TEXT
                self._notifications.error(SWITCHED_TO_TEXT_MESSAGE)
                return
        self._notifications.error(str(exc) or "Failed to transcribe audio")
