# sitegen/api/generate.py
import json
import logging
import os
import time
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from sitegen.core.chain import PipelineOrchestrator, publish_run, run_to_response, stream_generate_site
from sitegen.core.errors import FatalRequest, MalformedOutput, ManifestError, PipelineError
from sitegen.models import GenerateRequest, GenerateResponse
from sitegen.utils.config import (
    AI_BACKEND_LOG_DIR,
    AI_DEBUG,
    AI_DEGRADED_PLANNING,
    AI_MAX_CONCURRENCY,
    AI_OUTPUT_DIR,
    AI_RECONCILE,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _orchestrator_for(options: Dict[str, Any]) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        max_concurrency=int(options.get("max_concurrency") or AI_MAX_CONCURRENCY),
        reconcile=bool(options.get("reconcile", AI_RECONCILE)),
        allow_degraded=bool(options.get("allow_degraded", AI_DEGRADED_PLANNING)),
    )


def _status_for(exc: PipelineError) -> int:
    if isinstance(exc, (ManifestError, MalformedOutput)):
        return 422
    if isinstance(exc, FatalRequest) and exc.__class__ is FatalRequest:
        return 400
    return 502


@router.post("/", response_model=GenerateResponse)
async def generate(req: GenerateRequest):
    options = req.options or {}
    _log_incoming_request("generate", req)
    try:
        run = await _orchestrator_for(options).run(req.request)
    except PipelineError as e:
        raise HTTPException(status_code=_status_for(e), detail=str(e))
    result = run_to_response(run)
    if options.get("publish") and AI_OUTPUT_DIR:
        try:
            result["metadata"]["published_to"] = publish_run(run, AI_OUTPUT_DIR)
        except (OSError, ValueError) as e:
            logger.exception("publishing generated site failed")
            result["metadata"]["warnings"].append(f"publish failed: {e}")
    return result


@router.post("/stream")
async def generate_stream(req: GenerateRequest):
    """
    Streaming version of /generate that yields newline-delimited JSON events.
    The client should read the response line-by-line and parse each JSON event:
    'progress' events while the pipeline runs, then the files, then 'done'
    (or a single 'error').
    """
    _log_incoming_request("stream", req)
    orchestrator = _orchestrator_for(req.options or {})

    async def event_generator():
        async for line in stream_generate_site(req.request, orchestrator):
            yield line.encode("utf-8")

    return StreamingResponse(event_generator(), media_type="application/x-ndjson")


def _log_incoming_request(tag: str, req: GenerateRequest):
    if not AI_DEBUG:
        return
    try:
        os.makedirs(AI_BACKEND_LOG_DIR, exist_ok=True)
        fname = os.path.join(AI_BACKEND_LOG_DIR, f"{int(time.time())}_{tag}_incoming.json")
        with open(fname, "w", encoding="utf-8") as f:
            json.dump(req.model_dump(), f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.warning("failed to log incoming request: %s", e)
