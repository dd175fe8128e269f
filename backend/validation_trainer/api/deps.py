from validation_trainer.core.config import settings
from validation_trainer.services.llm_gateway import LlmGateway
from validation_trainer.services.progress import ProgressLedger
from validation_trainer.services.storage import JsonFileStore


def get_llm_gateway() -> LlmGateway:
    return LlmGateway.from_settings()


def get_progress_ledger() -> ProgressLedger:
    return ProgressLedger(
        JsonFileStore(settings.progress_store_path),
        storage_key=settings.progress_storage_key,
        session_limit=settings.progress_session_limit,
    )
