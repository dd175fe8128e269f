from fastapi import APIRouter, Depends, HTTPException, status

from validation_trainer.api.deps import get_progress_ledger
from validation_trainer.schemas.progress import UserProgress
from validation_trainer.services.progress import ProgressLedger

router = APIRouter(prefix="/api/v1/progress", tags=["progress"])


@router.get("", response_model=UserProgress)
def get_progress(ledger: ProgressLedger = Depends(get_progress_ledger)) -> UserProgress:
    progress = ledger.load()
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no practice recorded yet")
    return progress
