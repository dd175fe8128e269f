from fastapi import APIRouter, Depends, HTTPException, status

from validation_trainer.api.deps import get_llm_gateway, get_progress_ledger
from validation_trainer.schemas.progress import SessionCompleteRequest, SessionCompleteResponse
from validation_trainer.services.coach_service import finish_session
from validation_trainer.services.llm_gateway import LlmGateway
from validation_trainer.services.progress import ProgressLedger

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


@router.post("/complete", response_model=SessionCompleteResponse)
async def complete_session(
    payload: SessionCompleteRequest,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> SessionCompleteResponse:
    try:
        return await finish_session(payload, ledger, gateway)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
