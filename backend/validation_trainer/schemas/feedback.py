from enum import StrEnum

from pydantic import Field

from validation_trainer.schemas.common import CamelModel
from validation_trainer.schemas.conversation import ConversationMessage
from validation_trainer.schemas.scenarios import Scenario


class ValidationFeedback(CamelModel):
    identified_emotion: bool
    offered_justification: bool
    used_micro_validations: bool
    avoided_invalidating: bool
    avoided_premature_fix: bool
    asked_permission: bool
    matched_energy: bool
    used_i_statements: bool
    avoided_absolutes: bool
    overall_score: int = Field(ge=0, le=100)
    positives: list[str] = Field(default_factory=list)
    mistakes: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    model_response: str = ""


class AiAnalysis(CamelModel):
    feedback: str = ""
    score: int = Field(default=0, ge=0, le=100)
    positives: list[str] = Field(default_factory=list)
    mistakes: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    model_response: str = ""


class AnalyzeRequest(CamelModel):
    response: str = Field(min_length=1, max_length=4000)
    scenario: Scenario
    conversation_context: list[ConversationMessage] = Field(default_factory=list)


class LocalAnalyzeRequest(CamelModel):
    response: str = Field(default="", max_length=4000)
    emotions: list[str] = Field(default_factory=list, max_length=10)
    conversation_turn: int = Field(default=1, ge=1)


class HintKind(StrEnum):
    TIP = "tip"
    WARNING = "warning"
    SUCCESS = "success"


class LiveHint(CamelModel):
    kind: HintKind
    text: str


class HintRequest(CamelModel):
    messages: list[ConversationMessage] = Field(default_factory=list)
    current_transcript: str = Field(default="", max_length=4000)


class HintResponse(CamelModel):
    hint: LiveHint | None = None
