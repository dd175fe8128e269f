from fastapi import APIRouter, Depends

from validation_trainer.api.deps import get_llm_gateway
from validation_trainer.schemas.feedback import (
    AiAnalysis,
    AnalyzeRequest,
    LocalAnalyzeRequest,
    ValidationFeedback,
)
from validation_trainer.services.coach_service import analyze_with_llm
from validation_trainer.services.llm_gateway import LlmGateway
from validation_trainer.services.validation_analyzer import analyze_response

router = APIRouter(prefix="/api/v1/analyze", tags=["analyze"])


@router.post("", response_model=AiAnalysis)
async def analyze_with_model(
    payload: AnalyzeRequest,
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> AiAnalysis:
    return await analyze_with_llm(
        payload.response, payload.scenario, payload.conversation_context, gateway
    )


@router.post("/local", response_model=ValidationFeedback)
def analyze_locally(payload: LocalAnalyzeRequest) -> ValidationFeedback:
    return analyze_response(payload.response, payload.emotions, payload.conversation_turn)
