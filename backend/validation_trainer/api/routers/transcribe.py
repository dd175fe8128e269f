from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from validation_trainer.api.deps import get_llm_gateway
from validation_trainer.schemas.conversation import TranscriptionResponse
from validation_trainer.services.llm_gateway import LlmGateway

router = APIRouter(prefix="/api/v1/transcribe", tags=["transcribe"])

MAX_AUDIO_BYTES = 25 * 1024 * 1024


@router.post("", response_model=TranscriptionResponse)
async def transcribe(
    audio: UploadFile | None = File(default=None),
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> TranscriptionResponse:
    if audio is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="no audio file provided"
        )
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="audio file is empty")
    if len(content) > MAX_AUDIO_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="audio file is too large"
        )

    transcript = await gateway.transcribe_audio(
        audio.filename or "recording.webm",
        content,
        audio.content_type or "audio/webm",
    )
    return TranscriptionResponse(transcript=transcript)
