from enum import StrEnum
from typing import Annotated

from pydantic import ConfigDict, Field

from validation_trainer.schemas.common import CamelModel

EmotionName = Annotated[str, Field(min_length=1, max_length=40)]


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ScenarioCategory(StrEnum):
    STRESSFUL_DAY = "stressful-day"
    FRUSTRATION_OTHERS = "frustration-others"
    RELATIONSHIP_CONCERNS = "relationship-concerns"
    EXCITEMENT_PRIDE = "excitement-pride"
    INSECURITY_DOUBT = "insecurity-doubt"
    DECISION_MAKING = "decision-making"
    PAST_HURT = "past-hurt"
    GENERATED = "generated"


class Scenario(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=120)
    category: ScenarioCategory
    title: str = Field(min_length=1, max_length=120)
    description: str
    partner_opening: str
    emotions: tuple[EmotionName, ...] = Field(min_length=1, max_length=6)
    difficulty: Difficulty
    ideal_response: str
    follow_up: str | None = None


class ScenarioGenerateRequest(CamelModel):
    partner_description: str = Field(min_length=10, max_length=2000)


class ScenarioGenerateResponse(CamelModel):
    scenario: Scenario
