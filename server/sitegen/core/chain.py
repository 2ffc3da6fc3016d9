# sitegen/core/chain.py
"""
Pipeline orchestration.

    extracting -> planning -> scheduled -> generating(level 0..n-1) -> reconciling -> done

`failed` is only reachable from extracting/planning; generation and
reconciliation contain their own failures. `cancelled` is entered when the
caller's cancel event is seen between levels. Every transition publishes a
ProgressEvent before the stage's work starts.
"""
import asyncio
import logging
import os
import re
import time
from typing import Any, AsyncGenerator, Dict, Optional, Union

from sitegen.core.codegen_agent import generate_artifact, make_fallback
from sitegen.core.consistency import audit_references, reconcile
from sitegen.core.dep_resolver import schedule
from sitegen.core.errors import FatalRequest, PipelineCancelled, PipelineError
from sitegen.core.events import EventType, ProgressBus, ProgressSink, ndjson_line
from sitegen.core.feature_agent import extract_features
from sitegen.core.llm_client import CompletionClient
from sitegen.core.planner import plan_structure
from sitegen.models import (
    Artifact,
    ArtifactSpec,
    ArtifactStatus,
    GenerationHistory,
    PipelineRun,
    PipelineState,
    ProgressEvent,
)
from sitegen.utils.config import (
    AI_DEGRADED_PLANNING,
    AI_MAX_CONCURRENCY,
    AI_RECONCILE,
    STREAM_CANCEL_GRACE,
    STREAM_CHUNK_SZ,
)
from sitegen.utils.file_helpers import publish_artifacts

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    def __init__(self,
                 client: Optional[CompletionClient] = None,
                 *,
                 max_concurrency: int = AI_MAX_CONCURRENCY,
                 reconcile: bool = AI_RECONCILE,
                 allow_degraded: bool = AI_DEGRADED_PLANNING):
        self.client = client or CompletionClient()
        self.max_concurrency = max(1, int(max_concurrency))
        self.reconcile = reconcile
        self.allow_degraded = allow_degraded

    # ----------------------------
    # Event helpers
    # ----------------------------
    @staticmethod
    def _emit(run: PipelineRun, bus: ProgressBus, step: str, detail: str = "", level: Optional[int] = None) -> None:
        event = ProgressEvent(step=step, detail=detail, state=run.state, level=level)
        run.events.append(event)
        bus.publish(event)

    def _transition(self, run: PipelineRun, bus: ProgressBus, state: PipelineState,
                    detail: str = "", level: Optional[int] = None) -> None:
        run.state = state
        logger.info("pipeline -> %s%s", state.value, f" ({detail})" if detail else "")
        self._emit(run, bus, EventType.STATE, detail or state.value, level)

    def _warn(self, run: PipelineRun, bus: ProgressBus, message: str, level: Optional[int] = None) -> None:
        run.warnings.append(message)
        self._emit(run, bus, EventType.WARNING, message, level)

    def _check_cancel(self, run: PipelineRun, bus: ProgressBus, cancel_event: Optional[asyncio.Event], where: str) -> None:
        if cancel_event is None or not cancel_event.is_set():
            return
        run.state = PipelineState.CANCELLED
        run.error = f"cancelled {where}"
        self._emit(run, bus, EventType.STATE, run.error)
        raise PipelineCancelled(run.error, run=run)

    # ----------------------------
    # Stages
    # ----------------------------
    async def _plan(self, run: PipelineRun, bus: ProgressBus, history: Optional[GenerationHistory]) -> None:
        self._transition(run, bus, PipelineState.EXTRACTING, "Analyzing app features and functionality")
        run.feature_spec = await extract_features(run.request, self.client, history, self.allow_degraded)
        self._emit(run, bus, EventType.FEATURES, f"Identified {len(run.feature_spec.features)} key features")
        if run.feature_spec.degraded:
            self._warn(run, bus, "feature analysis degraded to defaults")

        self._transition(run, bus, PipelineState.PLANNING, "Planning file structure")
        manifest = await plan_structure(run.feature_spec, self.client, run.request, self.allow_degraded)
        run.manifest = manifest
        run.levels = schedule(manifest)
        self._emit(run, bus, EventType.MANIFEST, f"{len(manifest.artifacts)} files: {', '.join(manifest.names())}")
        if manifest.degraded:
            self._warn(run, bus, "structure plan degraded to the default layout")

        self._transition(run, bus, PipelineState.SCHEDULED,
                         f"{len(manifest.artifacts)} files in {len(run.levels)} levels")

    async def _generate_one(self, run: PipelineRun, bus: ProgressBus, spec: ArtifactSpec,
                            level: int, semaphore: asyncio.Semaphore) -> Artifact:
        async with semaphore:
            deps = {d: run.artifacts[d].content for d in spec.dependencies}
            try:
                artifact = await generate_artifact(spec, run.feature_spec, run.manifest, deps, self.client)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("unexpected error generating %s", spec.name)
                artifact = make_fallback(spec, run.manifest, [f"unexpected error: {e}"])
        run.record_artifact(artifact)
        self._emit(run, bus, EventType.ARTIFACT, f"{spec.name} ({artifact.status.value})", level)
        if artifact.status == ArtifactStatus.FALLBACK:
            self._warn(run, bus, f"{spec.name} uses fallback content", level)
        return artifact

    async def _generate(self, run: PipelineRun, bus: ProgressBus, cancel_event: Optional[asyncio.Event]) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        total = len(run.levels)
        for index, level in enumerate(run.levels):
            self._check_cancel(run, bus, cancel_event, f"before level {index}")
            run.current_level = index
            names = ", ".join(s.name for s in level)
            self._transition(run, bus, PipelineState.GENERATING, f"Level {index + 1}/{total}: {names}", index)
            await asyncio.gather(*(self._generate_one(run, bus, spec, index, semaphore) for spec in level))
            self._emit(run, bus, EventType.LEVEL_FINISHED, f"Level {index + 1}/{total} complete", index)
        run.current_level = None

    async def _reconcile(self, run: PipelineRun, bus: ProgressBus, cancel_event: Optional[asyncio.Event]) -> None:
        self._check_cancel(run, bus, cancel_event, "before reconciliation")
        self._transition(run, bus, PipelineState.RECONCILING,
                         "Checking cross-file consistency" if self.reconcile else "Auditing cross-file references")
        if self.reconcile:
            updated = await reconcile(run.artifacts, run.manifest, run.feature_spec, self.client)
            run.replace_artifacts(updated)
        for warning in audit_references(run.files()):
            self._warn(run, bus, warning)

    # ----------------------------
    # Public
    # ----------------------------
    async def run(self,
                  request_text: str,
                  progress_sink: Union[ProgressSink, ProgressBus, None] = None,
                  *,
                  history: Optional[GenerationHistory] = None,
                  cancel_event: Optional[asyncio.Event] = None) -> PipelineRun:
        bus = progress_sink if isinstance(progress_sink, ProgressBus) else ProgressBus(progress_sink)
        run = PipelineRun(request=request_text or "")
        started = time.time()

        try:
            if not run.request.strip():
                raise FatalRequest("request text is empty")
            await self._plan(run, bus, history)
        except PipelineError as e:
            self._fail(run, bus, e)
            e.run = run
            raise
        except Exception as e:
            self._fail(run, bus, e)
            raise

        await self._generate(run, bus, cancel_event)
        await self._reconcile(run, bus, cancel_event)

        self._transition(run, bus, PipelineState.DONE,
                         f"Generated {len(run.artifacts)} files in {time.time() - started:.1f}s")
        if history is not None:
            history.add(run.request, run.plan())
        return run

    def _fail(self, run: PipelineRun, bus: ProgressBus, exc: BaseException) -> None:
        run.state = PipelineState.FAILED
        run.error = str(exc) or type(exc).__name__
        logger.error("pipeline failed during planning: %s", run.error)
        self._emit(run, bus, EventType.ERROR, run.error)


async def generate_complete(request_text: str,
                            progress_sink: Union[ProgressSink, ProgressBus, None] = None,
                            *,
                            history: Optional[GenerationHistory] = None,
                            cancel_event: Optional[asyncio.Event] = None,
                            client: Optional[CompletionClient] = None,
                            **orchestrator_options: Any) -> PipelineRun:
    """Run the whole pipeline once. Raises PipelineError subclasses with `.run` attached."""
    orchestrator = PipelineOrchestrator(client, **orchestrator_options)
    return await orchestrator.run(request_text, progress_sink, history=history, cancel_event=cancel_event)


# ----------------------------
# Result shaping / delivery
# ----------------------------
def project_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "site"


def run_to_response(run: PipelineRun) -> Dict[str, Any]:
    manifest = run.manifest
    return {
        "project_name": manifest.project_name if manifest else "Application",
        "files": [{"path": a.name, "content": a.content, "status": a.status.value} for a in run.files()],
        "metadata": {
            "generated_at": int(time.time()),
            "warnings": list(run.warnings),
            "fallbacks": run.fallback_names(),
            "plan": run.plan(),
            "levels": [[s.name for s in level] for level in run.levels],
            "architecture": manifest.architecture if manifest else "",
            "dependencies": list(manifest.dependencies) if manifest else [],
            "events": [e.model_dump(mode="json") for e in run.events],
        },
    }


def publish_run(run: PipelineRun, output_root: str) -> str:
    name = run.manifest.project_name if run.manifest else "site"
    target = os.path.join(output_root, project_slug(name))
    return publish_artifacts(target, {a.name: a.content for a in run.files()})


async def stream_generate_site(request_text: str,
                               orchestrator: PipelineOrchestrator,
                               history: Optional[GenerationHistory] = None) -> AsyncGenerator[str, None]:
    """
    Async generator of newline-delimited JSON events:
    progress* then file_start/file_chunk/file_complete per file and done, or error.
    """
    bus = ProgressBus()
    queue = bus.subscribe(maxsize=1000)
    cancel_event = asyncio.Event()
    task = asyncio.ensure_future(orchestrator.run(request_text, bus, history=history, cancel_event=cancel_event))
    getter: Optional[asyncio.Future] = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield ndjson_line("progress", getter.result().model_dump(mode="json"))
                continue
            getter.cancel()
            break
        while not queue.empty():
            yield ndjson_line("progress", queue.get_nowait().model_dump(mode="json"))

        try:
            run = task.result()
        except PipelineError as e:
            yield ndjson_line("error", {"type": type(e).__name__, "message": str(e)})
            return

        for artifact in run.files():
            content = artifact.content
            yield ndjson_line("file_start", {"path": artifact.name, "status": artifact.status.value})
            for i in range(0, len(content), STREAM_CHUNK_SZ):
                chunk = content[i:i + STREAM_CHUNK_SZ]
                final = (i + STREAM_CHUNK_SZ) >= len(content)
                yield ndjson_line("file_chunk", {"path": artifact.name, "chunk": chunk,
                                                 "index": i // STREAM_CHUNK_SZ, "final": final})
            yield ndjson_line("file_complete", {"path": artifact.name, "size": len(content)})
        response = run_to_response(run)
        yield ndjson_line("done", {
            "project_name": response["project_name"],
            "files_count": len(response["files"]),
            "warnings": response["metadata"]["warnings"],
            "fallbacks": response["metadata"]["fallbacks"],
        })
    finally:
        if getter is not None and not getter.done():
            getter.cancel()
        bus.unsubscribe(queue)
        if not task.done():
            _abandon_run(task, cancel_event)


def _abandon_run(task: asyncio.Future, cancel_event: asyncio.Event, grace: float = STREAM_CANCEL_GRACE) -> None:
    """
    Stop a run whose consumer went away. The current level finishes and no
    further level starts; the task is cancelled outright only after `grace`.
    """
    cancel_event.set()
    handle = asyncio.get_running_loop().call_later(grace, task.cancel)

    def _finished(t: asyncio.Future) -> None:
        handle.cancel()
        if t.cancelled():
            logger.warning("abandoned run cancelled after %.0fs grace period", grace)
            return
        exc = t.exception()
        if exc is not None and not isinstance(exc, PipelineCancelled):
            logger.warning("abandoned run ended with %s: %s", type(exc).__name__, exc)

    task.add_done_callback(_finished)
