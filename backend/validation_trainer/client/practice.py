from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import Callable

from validation_trainer.client.api_client import TrainerApiClient, TrainerApiError
from validation_trainer.core.errors import StreamError
from validation_trainer.core.notifications import NotificationCenter
from validation_trainer.schemas.conversation import (
    ConversationMessage,
    MessageRole,
    PartnerRequest,
    new_message_timestamp,
)
from validation_trainer.schemas.progress import SessionCompleteRequest, SessionCompleteResponse
from validation_trainer.schemas.scenarios import Scenario

logger = logging.getLogger("validation.practice")

Narrator = Callable[[str], None]


class SessionState(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"


class PracticeConversation:
    """Drives one practice conversation against the trainer API.

    Partner replies stream into a placeholder message; each finished
    sentence goes to ``narrator`` while the rest is still arriving.
    """

    def __init__(
        self,
        api: TrainerApiClient,
        scenario: Scenario,
        notifications: NotificationCenter,
        *,
        narrator: Narrator | None = None,
        partner_description: str | None = None,
    ) -> None:
        self._api = api
        self.scenario = scenario
        self._notifications = notifications
        self._narrator = narrator
        self.partner_description = partner_description
        self.messages: list[ConversationMessage] = []
        self.state = SessionState.IDLE
        self.start_time: int | None = None
        self.last_quality: str | None = None
        self.result: SessionCompleteResponse | None = None

    def _index_of(self, message_id: int) -> int | None:
        for index in range(len(self.messages) - 1, -1, -1):
            message = self.messages[index]
            if message.role == MessageRole.PARTNER and message.timestamp == message_id:
                return index
        return None

    def _append_chunk(self, message_id: int, chunk: str) -> None:
        index = self._index_of(message_id)
        if index is None:
            logger.warning("no partner message %s for streamed chunk", message_id)
            return
        message = self.messages[index]
        self.messages[index] = message.model_copy(update={"content": message.content + chunk})

    def _finalize(self, message_id: int, text: str, quality: str | None) -> None:
        self.last_quality = quality
        index = self._index_of(message_id)
        if index is not None:
            self.messages[index] = self.messages[index].model_copy(update={"content": text})

    def _drop(self, message_id: int) -> None:
        index = self._index_of(message_id)
        if index is not None:
            del self.messages[index]

    @staticmethod
    def _log_stream_error(error: StreamError) -> None:
        logger.warning("partner stream failed: %s", error)

    async def _stream_into_placeholder(self, request: PartnerRequest) -> tuple[int, bool]:
        message_id = new_message_timestamp()
        self.messages.append(
            ConversationMessage(role=MessageRole.PARTNER, content="", timestamp=message_id)
        )
        outcome = await self._api.stream_partner_response(
            request,
            on_chunk=lambda chunk: self._append_chunk(message_id, chunk),
            on_complete=lambda text, quality: self._finalize(message_id, text, quality),
            on_error=self._log_stream_error,
            on_sentence=self._narrator,
        )
        return message_id, outcome.completed

    async def open(self) -> bool:
        """Start the session with the partner's streamed opening line."""
        self.state = SessionState.ACTIVE
        self.start_time = int(time.time() * 1000)
        self.messages = []
        self.result = None

        request = PartnerRequest(
            scenario=self.scenario,
            conversation_history=[],
            user_response="",
            partner_description=self.partner_description,
        )
        _, completed = await self._stream_into_placeholder(request)
        if completed:
            self._notifications.success(
                "Session started! Your partner has begun the conversation."
            )
            return True
        self.messages = []
        self._notifications.error("Failed to start conversation. Please try again.")
        return False

    async def respond(self, text: str) -> ConversationMessage | None:
        """Add the user's reply and return the partner's answer, if any."""
        content = text.strip()
        if not content:
            return None

        history = list(self.messages)
        self.messages.append(
            ConversationMessage(
                role=MessageRole.USER, content=content, timestamp=new_message_timestamp()
            )
        )
        request = PartnerRequest(
            scenario=self.scenario,
            conversation_history=history,
            user_response=content,
            partner_description=self.partner_description,
        )

        message_id, completed = await self._stream_into_placeholder(request)
        if completed:
            index = self._index_of(message_id)
            return self.messages[index] if index is not None else None

        self._drop(message_id)
        try:
            fallback = await self._api.generate_partner_response(request)
        except TrainerApiError as exc:
            logger.error("fallback partner reply failed: %s", exc)
            self._notifications.error("Failed to get partner response. Please try again.")
            return None

        self.last_quality = fallback.validation_quality
        message = ConversationMessage(
            role=MessageRole.PARTNER,
            content=fallback.response,
            timestamp=new_message_timestamp(),
        )
        self.messages.append(message)
        if self._narrator is not None and message.content:
            self._narrator(message.content)
        return message

    async def finish(self) -> SessionCompleteResponse | None:
        if not any(m.role == MessageRole.USER for m in self.messages):
            self._notifications.warning(
                "No responses to analyze. Please have a conversation first."
            )
            return None

        self.state = SessionState.ANALYZING
        try:
            self.result = await self._api.complete_session(
                SessionCompleteRequest(
                    scenario=self.scenario,
                    messages=self.messages,
                    start_time=self.start_time,
                )
            )
        except TrainerApiError as exc:
            self._notifications.error(f"Failed to analyze session: {exc}")
            return None
        finally:
            self.state = SessionState.REVIEWING

        self._notifications.success("Session complete! Review your feedback below.")
        return self.result
