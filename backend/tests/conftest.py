import os
import sys
import tempfile
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("CORS_ORIGINS", "*")
os.environ.setdefault("LLM_API_KEY", "")
os.environ.setdefault("ANALYSIS_BACKOFF_SECONDS", "0")
os.environ.setdefault(
    "PROGRESS_STORE_DIR",
    str(Path(tempfile.gettempdir()) / "validation-trainer-tests"),
)
