import pytest

from validation_trainer.core.config import Settings


def _base_kwargs():
    return {
        "APP_ENV": "test",
        "LOG_LEVEL": "INFO",
        "LLM_API_KEY": "",
        "CORS_ORIGINS": "*",
    }


def test_prod_requires_llm_key():
    payload = _base_kwargs()
    payload["APP_ENV"] = "production"

    with pytest.raises(ValueError):
        Settings(**payload)


def test_prod_accepts_configured_llm_key():
    payload = _base_kwargs()
    payload["APP_ENV"] = "production"
    payload["LLM_API_KEY"] = "  sk-test  "

    cfg = Settings(**payload)
    assert cfg.llm_api_key == "sk-test"


def test_blank_key_and_catalog_path_become_none():
    payload = _base_kwargs()
    payload["LLM_API_KEY"] = "   "
    payload["PHRASE_CATALOG_PATH"] = ""

    cfg = Settings(**payload)
    assert cfg.llm_api_key is None
    assert cfg.phrase_catalog_path is None


def test_numeric_settings_are_clamped_or_defaulted():
    payload = _base_kwargs()
    payload.update(
        {
            "SLOW_REQUEST_MS": "0",
            "PROGRESS_SESSION_LIMIT": "oops",
            "ANALYSIS_MAX_ATTEMPTS": "-2",
            "ANALYSIS_BACKOFF_SECONDS": "-1",
            "LLM_TIMEOUT_SECONDS": "fast",
            "OBSERVABILITY_RECENT_ERROR_LIMIT": "0",
        }
    )

    cfg = Settings(**payload)
    assert cfg.slow_request_ms == 1
    assert cfg.progress_session_limit == 50
    assert cfg.analysis_max_attempts == 1
    assert cfg.analysis_backoff_seconds == 0.0
    assert cfg.llm_timeout_seconds == 30.0
    assert cfg.observability_recent_error_limit == 1


def test_progress_store_path_expands_user(tmp_path):
    payload = _base_kwargs()
    payload["PROGRESS_STORE_DIR"] = f" {tmp_path} "

    cfg = Settings(**payload)
    assert cfg.progress_store_path == tmp_path
