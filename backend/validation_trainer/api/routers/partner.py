from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from validation_trainer.api.deps import get_llm_gateway
from validation_trainer.core.errors import LlmUnavailableError
from validation_trainer.schemas.conversation import PartnerReplyResponse, PartnerRequest
from validation_trainer.services.coach_service import (
    generate_partner_reply,
    stream_partner_events,
)
from validation_trainer.services.llm_gateway import LlmGateway

router = APIRouter(prefix="/api/v1/partner", tags=["partner"])


@router.post("/stream")
async def stream_partner_reply(
    payload: PartnerRequest,
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> StreamingResponse:
    if not gateway.configured:
        raise LlmUnavailableError("LLM_API_KEY is not configured")
    return StreamingResponse(
        stream_partner_events(payload, gateway),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("", response_model=PartnerReplyResponse)
async def partner_reply(
    payload: PartnerRequest,
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> PartnerReplyResponse:
    return await generate_partner_reply(payload, gateway)
