from datetime import date

from pydantic import ConfigDict, Field

from validation_trainer.schemas.common import CamelModel
from validation_trainer.schemas.conversation import ConversationMessage
from validation_trainer.schemas.feedback import ValidationFeedback
from validation_trainer.schemas.scenarios import Scenario


class PracticeSession(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    scenario_id: str
    scenario_title: str
    start_time: int = Field(ge=0)
    end_time: int = Field(ge=0)
    messages: tuple[ConversationMessage, ...]
    feedback: ValidationFeedback


class UserProgress(CamelModel):
    total_sessions: int = Field(ge=0)
    current_streak: int = Field(ge=0)
    last_practice_date: date
    average_score: float = Field(ge=0, le=100)
    common_mistakes: dict[str, int] = Field(default_factory=dict)
    category_progress: dict[str, int] = Field(default_factory=dict)
    sessions: list[PracticeSession] = Field(default_factory=list)


class SessionCompleteRequest(CamelModel):
    scenario: Scenario
    messages: list[ConversationMessage] = Field(min_length=1)
    start_time: int | None = Field(default=None, ge=0)


class SessionCompleteResponse(CamelModel):
    feedback: ValidationFeedback
    ai_summary: str
    session: PracticeSession
    progress: UserProgress
