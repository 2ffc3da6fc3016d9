# sitegen/core/codegen_agent.py
"""
Code Generation Agent
- Exposes:
    async def generate_artifact(spec, feature_spec, manifest, dependency_contents, client) -> Artifact
    def settle_content(kind, raw) -> Optional[SettledContent]
- generate_artifact never raises (task cancellation aside): a failed call or
  content that stays invalid after one repair pass becomes a fallback artifact.
"""
import asyncio
import logging
from typing import Mapping, NamedTuple, Optional, Sequence, Tuple

from sitegen.core.fallbacks import fallback_content
from sitegen.core.llm_client import CompletionClient
from sitegen.core.prompts import build_artifact_prompt, task_name
from sitegen.core.validator import clean_content, repair_content, validate_content
from sitegen.models import Artifact, ArtifactKind, ArtifactSpec, ArtifactStatus, FeatureSpec, Manifest
from sitegen.utils.config import AGENT_TEMPERATURES

logger = logging.getLogger(__name__)


class SettledContent(NamedTuple):
    content: str
    status: ArtifactStatus
    issues: Tuple[str, ...] = ()


def settle_content(kind: ArtifactKind, raw: str) -> Optional[SettledContent]:
    """
    clean -> validate -> (one repair pass -> validate).
    Returns None when the content is still invalid after repair.
    """
    content = clean_content(kind, raw or "")
    report = validate_content(kind, content)
    if report.ok:
        return SettledContent(content, ArtifactStatus.VALID)
    repaired = repair_content(kind, content)
    after = validate_content(kind, repaired)
    if after.ok:
        return SettledContent(repaired, ArtifactStatus.REPAIRED, report.issues)
    logger.debug("repair did not fix %s content: %s", kind.value, "; ".join(after.issues))
    return None


def make_fallback(spec: ArtifactSpec, manifest: Manifest, notes: Sequence[str] = ()) -> Artifact:
    return Artifact(
        name=spec.name,
        kind=spec.kind,
        content=fallback_content(spec, manifest),
        status=ArtifactStatus.FALLBACK,
        notes=tuple(notes),
    )


async def generate_artifact(spec: ArtifactSpec,
                            feature_spec: FeatureSpec,
                            manifest: Manifest,
                            dependency_contents: Mapping[str, str],
                            client: CompletionClient) -> Artifact:
    prompt = build_artifact_prompt(spec.kind, spec, feature_spec, manifest, dependency_contents)
    try:
        raw = await client.complete(prompt, {
            "temperature": AGENT_TEMPERATURES.get(spec.kind.value),
            "label": f"{task_name(spec.kind)}:{spec.name}",
        })
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("generation of %s failed, using fallback: %s", spec.name, e)
        return make_fallback(spec, manifest, [f"generation failed: {e}"])

    settled = settle_content(spec.kind, raw)
    if settled is None:
        logger.warning("%s invalid after repair, using fallback", spec.name)
        return make_fallback(spec, manifest, ["content invalid after repair"])
    if settled.status == ArtifactStatus.REPAIRED:
        logger.info("%s repaired: %s", spec.name, "; ".join(settled.issues))
    return Artifact(
        name=spec.name,
        kind=spec.kind,
        content=settled.content,
        status=settled.status,
        notes=settled.issues,
    )
