import random
import time
from enum import StrEnum

from pydantic import Field

from validation_trainer.schemas.common import CamelModel
from validation_trainer.schemas.scenarios import Scenario


class MessageRole(StrEnum):
    PARTNER = "partner"
    USER = "user"


class ValidationQuality(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    INVALIDATING = "invalidating"


class ConversationMessage(CamelModel):
    role: MessageRole
    content: str = Field(default="", max_length=8000)
    # Unique per session. Either epoch milliseconds or the scaled form from
    # new_message_timestamp(); progress.message_time_ms reads both.
    timestamp: int = Field(ge=0)


def new_message_timestamp() -> int:
    # Millisecond clock scaled by 1000 plus a random offset keeps two
    # messages created in the same tick distinct.
    return int(time.time() * 1000) * 1000 + random.randrange(1000)


class PartnerRequest(CamelModel):
    scenario: Scenario
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    user_response: str = Field(default="", max_length=4000)
    partner_description: str | None = Field(default=None, max_length=2000)


class PartnerReplyResponse(CamelModel):
    response: str
    validation_quality: ValidationQuality | None = None


class TranscriptionResponse(CamelModel):
    transcript: str
