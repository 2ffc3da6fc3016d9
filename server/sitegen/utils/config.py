# sitegen/utils/config.py
"""
Environment-driven settings shared by the pipeline stages.
Values are read once at import time; tests override them by passing
explicit arguments instead of patching the environment.
"""
import os
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# LLM
GOOGLE_API_KEY_ENV = "GOOGLE_API_KEY_GEMINI"
AI_MODEL = os.environ.get("AI_MODEL", "gemini-2.5-flash-lite")

# per-stage sampling temperatures
AGENT_TEMPERATURES: Dict[str, float] = {
    "features": float(os.environ.get("AI_TEMP_FEATURES", 0.3)),
    "structure": float(os.environ.get("AI_TEMP_STRUCTURE", 0.2)),
    "markup": float(os.environ.get("AI_TEMP_MARKUP", 0.5)),
    "style": float(os.environ.get("AI_TEMP_STYLE", 0.5)),
    "behavior": float(os.environ.get("AI_TEMP_BEHAVIOR", 0.4)),
    "reconcile": float(os.environ.get("AI_TEMP_RECONCILE", 0.1)),
}

# retry / timeouts
AI_RETRY_COUNT = int(os.environ.get("AI_RETRY_COUNT", 3))  # total attempts per completion
AI_TIMEOUT = float(os.environ.get("AI_TIMEOUT", 180))  # seconds per completion call
AI_BACKOFF_BASE = float(os.environ.get("AI_BACKOFF_BASE", 1.0))  # seconds, doubled per retry

# orchestration
AI_MAX_CONCURRENCY = max(1, int(os.environ.get("AI_MAX_CONCURRENCY", 4)))
AI_RECONCILE = _env_bool("AI_RECONCILE", False)
AI_DEGRADED_PLANNING = _env_bool("AI_DEGRADED_PLANNING", True)

# output / debugging
AI_BACKEND_LOG_DIR = os.environ.get("AI_BACKEND_LOG_DIR", "./ai_backend_logs")
AI_DEBUG = _env_bool("AI_DEBUG", False)
AI_OUTPUT_DIR = os.environ.get("AI_OUTPUT_DIR", "")
STREAM_CHUNK_SZ = int(os.environ.get("AI_STREAM_CHUNK_SZ", 1024))
# seconds an abandoned stream's run may keep going before it is cancelled outright
STREAM_CANCEL_GRACE = float(os.environ.get("AI_STREAM_CANCEL_GRACE", 600))
