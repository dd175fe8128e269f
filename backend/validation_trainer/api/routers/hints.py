from fastapi import APIRouter

from validation_trainer.schemas.feedback import HintRequest, HintResponse
from validation_trainer.services.validation_analyzer import suggest_live_hint

router = APIRouter(prefix="/api/v1/hints", tags=["hints"])


@router.post("", response_model=HintResponse)
def live_hint(payload: HintRequest) -> HintResponse:
    return HintResponse(hint=suggest_live_hint(payload.messages, payload.current_transcript))
