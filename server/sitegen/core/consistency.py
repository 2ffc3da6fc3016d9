# sitegen/core/consistency.py
"""
Cross-file consistency.

audit_references() is a cheap static check run on every finished set; its
findings are warnings only. reconcile() is the optional model-driven pass: it
may rewrite the content of existing files, never add, drop or rename them, and
every rewrite has to pass the same validation as freshly generated content.
"""
import asyncio
import logging
import posixpath
import re
from typing import Any, Dict, Iterable, List, Mapping, Set

from sitegen.core.codegen_agent import settle_content
from sitegen.core.errors import MalformedOutput
from sitegen.core.llm_client import CompletionClient
from sitegen.core.output_parser import extract
from sitegen.core.prompts import TASK_RECONCILE, build_consistency_prompt
from sitegen.models import Artifact, ArtifactKind, ArtifactStatus, FeatureSpec, Manifest
from sitegen.utils.config import AGENT_TEMPERATURES

logger = logging.getLogger(__name__)

_CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
_CSS_CLASS_RE = re.compile(r"\.(-?[_a-zA-Z][\w-]*)")
_CLASS_ATTR_RE = re.compile(r"\bclass\s*=\s*(?:\"([^\"]*)\"|'([^']*)')", re.I)
_HANDLER_RE = re.compile(r"\bon[a-z]+\s*=\s*(?:\"|')\s*([A-Za-z_$][\w$]*)\s*\(", re.I)
_LINK_RE = re.compile(r"\b(?:href|src)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')", re.I)
_EXTERNAL_PREFIXES = ("http:", "https:", "//", "#", "mailto:", "tel:", "javascript:", "data:")
_BUILTIN_CALLS = frozenset({
    "alert", "confirm", "prompt", "console", "event", "this", "return",
    "history", "location", "window", "document", "setTimeout", "fetch",
})


def _defines_function(name: str, scripts: str) -> bool:
    n = re.escape(name)
    pattern = (
        r"function\s+" + n + r"\b"
        r"|\b" + n + r"\s*[:=]\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|[\w$]+\s*=>)"
        r"|\bwindow\." + n + r"\s*="
    )
    return re.search(pattern, scripts) is not None


def _local_target(page: str, link: str) -> str:
    target = re.split(r"[?#]", link, maxsplit=1)[0].strip()
    if not target:
        return ""
    if target.startswith("/"):
        return target.lstrip("/")
    return posixpath.normpath(posixpath.join(posixpath.dirname(page), target))


def audit_references(artifacts: Iterable[Artifact]) -> List[str]:
    """
    Report markup references with no counterpart in the set:
    undefined CSS classes, undefined inline handler functions and missing
    local href/src targets.
    """
    items = list(artifacts)
    names = {a.name for a in items}
    styles = "\n".join(_CSS_COMMENT_RE.sub("", a.content) for a in items if a.kind == ArtifactKind.STYLE)
    scripts = "\n".join(a.content for a in items if a.kind == ArtifactKind.BEHAVIOR)
    defined_classes: Set[str] = set(_CSS_CLASS_RE.findall(styles))

    warnings: List[str] = []
    for page in items:
        if page.kind != ArtifactKind.MARKUP:
            continue
        used: Set[str] = set()
        for m in _CLASS_ATTR_RE.finditer(page.content):
            for cls in (m.group(1) or m.group(2) or "").split():
                if "{" not in cls and "$" not in cls:
                    used.add(cls)
        # classes only toggled from scripts are hooks, not missing styles
        missing = sorted(c for c in used if c not in defined_classes and c not in scripts)
        if missing and styles:
            warnings.append(f"{page.name}: CSS classes not defined in any stylesheet: {', '.join(missing)}")

        inline_scripts = "\n".join(re.findall(r"<script\b[^>]*>(.*?)</script>", page.content, re.S | re.I))
        handlers = sorted({h for h in _HANDLER_RE.findall(page.content) if h not in _BUILTIN_CALLS})
        undefined = [h for h in handlers if not _defines_function(h, scripts + "\n" + inline_scripts)]
        if undefined:
            warnings.append(f"{page.name}: handler functions not defined in any script: {', '.join(undefined)}")

        targets = set()
        for m in _LINK_RE.finditer(page.content):
            link = (m.group(1) or m.group(2) or "").strip()
            if not link or link.lower().startswith(_EXTERNAL_PREFIXES):
                continue
            target = _local_target(page.name, link)
            if target and target not in names:
                targets.add(target)
        if targets:
            warnings.append(f"{page.name}: links to files not in the site: {', '.join(sorted(targets))}")
    return warnings


def _candidate_map(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict) and "files" in value:
        value = value["files"]
    if isinstance(value, list):
        out = {}
        for item in value:
            if isinstance(item, dict):
                name = item.get("name") or item.get("path")
                if isinstance(name, str):
                    out[name] = item.get("content")
        return out
    return value if isinstance(value, dict) else {}


async def reconcile(artifacts: Mapping[str, Artifact],
                    manifest: Manifest,
                    feature_spec: FeatureSpec,
                    client: CompletionClient) -> Dict[str, Artifact]:
    """
    Best-effort consistency pass. Returns a new name -> Artifact mapping with the
    same keys; any failure leaves the input artifacts in place.
    """
    result = dict(artifacts)
    issues = audit_references(artifacts.values())
    prompt = build_consistency_prompt({n: a.content for n, a in artifacts.items()}, manifest, feature_spec, issues)
    try:
        text = await client.complete(prompt, {
            "temperature": AGENT_TEMPERATURES.get("reconcile"),
            "label": TASK_RECONCILE,
        })
        candidates = _candidate_map(extract(text, ("files",)).value)
    except asyncio.CancelledError:
        raise
    except MalformedOutput as e:
        logger.warning("consistency pass returned no usable edits: %s", e)
        return result
    except Exception as e:
        logger.warning("consistency pass skipped: %s", e)
        return result

    for name, content in candidates.items():
        current = artifacts.get(name)
        if current is None:
            logger.info("consistency pass ignored unknown file %r", name)
            continue
        if current.status == ArtifactStatus.FALLBACK:
            continue
        if not isinstance(content, str) or content == current.content:
            continue
        settled = settle_content(current.kind, content)
        if settled is None:
            logger.info("consistency edit for %s rejected: invalid content", name)
            continue
        result[name] = Artifact(
            name=name,
            kind=current.kind,
            content=settled.content,
            status=settled.status,
            notes=current.notes + ("edited by consistency pass",),
        )
    return result
