# sitegen/core/llm_client.py
import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from sitegen.core.errors import (
    CompletionError,
    FatalRequest,
    RetriesExhausted,
    TransientUnavailable,
)
from sitegen.utils.config import (
    AI_BACKEND_LOG_DIR,
    AI_BACKOFF_BASE,
    AI_DEBUG,
    AI_MODEL,
    AI_RETRY_COUNT,
    AI_TIMEOUT,
    GOOGLE_API_KEY_ENV,
)

logger = logging.getLogger(__name__)

# an awaitable (prompt, timeout, temperature) -> text
Capability = Callable[[str, float, Optional[float]], Awaitable[str]]

# Markers in provider error text that mean "try again later".
# Status codes only count as whole numbers ("5000" is not a 500).
_TRANSIENT_STATUS_RE = re.compile(r"(?<![\d.])(?:429|50[0234])(?!\d)")
_TRANSIENT_MARKERS = (
    "overloaded",
    "unavailable",
    "resource_exhausted",
    "resource exhausted",
    "rate limit",
    "quota exceeded",
    "deadline exceeded",
    "timed out",
    "try again",
)


# -------------------------
# LLM init
# -------------------------
def get_llm(temperature: Optional[float] = None):
    api_key = os.getenv(GOOGLE_API_KEY_ENV)
    if not api_key:
        raise FatalRequest(f"Please set {GOOGLE_API_KEY_ENV} environment variable for Gemini access.")
    if "GOOGLE_API_KEY" not in os.environ:
        os.environ["GOOGLE_API_KEY"] = api_key
    return ChatGoogleGenerativeAI(model=AI_MODEL, temperature=0.5 if temperature is None else temperature)


def _save_debug_log(prefix: str, payload: Dict[str, Any]):
    fname = f"{int(time.time())}_{prefix}.json"
    try:
        os.makedirs(AI_BACKEND_LOG_DIR, exist_ok=True)
        with open(os.path.join(AI_BACKEND_LOG_DIR, fname), "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
    except OSError:
        logger.exception("Failed to write debug log")


def _message_text(content: Any) -> str:
    # Gemini may return a list of content parts instead of a plain string
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return "" if content is None else str(content)


def classify_error(exc: BaseException) -> CompletionError:
    """Map a provider exception onto the transient/fatal split."""
    if isinstance(exc, CompletionError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return TransientUnavailable(f"capability timed out or disconnected: {exc!r}")
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if isinstance(status, int) and (status == 429 or status >= 500):
        return TransientUnavailable(f"capability unavailable ({status}): {exc}")
    text = f"{type(exc).__name__} {exc}".lower()
    if _TRANSIENT_STATUS_RE.search(text) or any(marker in text for marker in _TRANSIENT_MARKERS):
        return TransientUnavailable(f"capability unavailable: {exc}")
    return FatalRequest(f"request rejected: {exc}")


class GeminiCapability:
    """Default capability: one ChatGoogleGenerativeAI.ainvoke per call."""

    def __init__(self, debug: bool = AI_DEBUG):
        self.debug = debug

    async def __call__(self, prompt: str, timeout: float, temperature: Optional[float] = None) -> str:
        llm = get_llm(temperature)
        start_ts = time.time()
        try:
            result = await asyncio.wait_for(llm.ainvoke([HumanMessage(content=prompt)]), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransientUnavailable(f"completion timed out after {timeout}s") from e
        except CompletionError:
            raise
        except Exception as e:
            raise classify_error(e) from e
        text = _message_text(getattr(result, "content", result))
        if self.debug:
            _save_debug_log("llm_call", {
                "duration_s": time.time() - start_ts,
                "prompt": prompt,
                "raw_result": text,
            })
        return text


# -------------------------
# Completion client
# -------------------------
class CompletionClient:
    """
    Stateless retrying wrapper around a capability.

    Transient failures are retried with exponential backoff
    (base_delay * 2 ** (attempt - 1)); fatal ones propagate immediately.
    After max_attempts transient failures RetriesExhausted is raised.
    """

    def __init__(self,
                 capability: Optional[Capability] = None,
                 max_attempts: int = AI_RETRY_COUNT,
                 base_delay: float = AI_BACKOFF_BASE,
                 timeout: float = AI_TIMEOUT,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 debug: bool = AI_DEBUG):
        self.capability = capability or GeminiCapability(debug=debug)
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep
        self.debug = debug

    def backoff_delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1))

    async def complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise FatalRequest("prompt must be a non-empty string")
        options = options or {}
        timeout = float(options.get("timeout") or self.timeout)
        temperature = options.get("temperature")
        label = options.get("label", "completion")

        attempts_info: List[Dict[str, Any]] = []
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            start_ts = time.time()
            try:
                text = await self.capability(prompt, timeout, temperature)
                attempts_info.append({"attempt": attempt, "duration_s": time.time() - start_ts})
                return text if isinstance(text, str) else str(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                err = classify_error(e)
                attempts_info.append({"attempt": attempt, "duration_s": time.time() - start_ts, "error": repr(e)})
                if isinstance(err, FatalRequest):
                    logger.error("%s attempt %d failed fatally: %s", label, attempt, e)
                    if self.debug:
                        _save_debug_log(f"{label}_fatal", {"prompt": prompt, "attempts": attempts_info})
                    if err is e:
                        raise
                    raise err from e
                last_exc = err
                logger.warning("%s attempt %d/%d unavailable: %s", label, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_delay(attempt))

        if self.debug:
            _save_debug_log(f"{label}_exhausted", {"prompt": prompt, "attempts": attempts_info})
        raise RetriesExhausted(self.max_attempts, last_exc)
