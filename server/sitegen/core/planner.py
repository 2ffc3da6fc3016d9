# sitegen/core/planner.py
"""
Structure Planning Agent
- Exposes:
    async def plan_structure(feature_spec, client, request="") -> Manifest
    def validate_manifest(manifest) -> None   (raises ManifestError)
    def default_manifest(feature_spec, request) -> Manifest
- The planner fails fast: a manifest with unsafe, duplicate or dangling names
  is rejected before any file is generated.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sitegen.core.errors import ManifestError, MalformedOutput, RetriesExhausted
from sitegen.core.llm_client import CompletionClient
from sitegen.core.output_parser import extract
from sitegen.core.prompts import STRUCTURE_KEYS, TASK_STRUCTURE, build_structure_prompt
from sitegen.models import (
    ArtifactKind,
    ArtifactSpec,
    FeatureSpec,
    Manifest,
    NavigationSpec,
    RouteSpec,
)
from sitegen.utils.config import AGENT_TEMPERATURES, AI_DEGRADED_PLANNING
from sitegen.utils.file_helpers import _safe_normalize

logger = logging.getLogger(__name__)

SHARED_STYLE = "styles.css"
SHARED_SCRIPT = "script.js"

# (page stem, title, purpose, trigger words)
PAGE_RULES: Tuple[Tuple[str, str, str, Tuple[str, ...]], ...] = (
    ("about", "About", "Information about the company, team, or project", ("about", "company", "team", "story")),
    ("contact", "Contact", "Contact information and communication forms", ("contact", "support", "reach")),
    ("services", "Services", "Detailed information about services or features offered", ("service", "feature", "offering")),
    ("products", "Products", "Product catalog and detailed product information", ("product", "item", "catalog")),
    ("blog", "Blog", "Blog posts, articles, and news updates", ("blog", "news", "article", "post")),
    ("dashboard", "Dashboard", "Administrative interface and control panel", ("dashboard", "admin", "control")),
    ("portfolio", "Portfolio", "Showcase of work, projects, or achievements", ("portfolio", "gallery", "showcase")),
    ("pricing", "Pricing", "Pricing plans and subscription options", ("pricing", "plan", "subscription")),
)
DEFAULT_EXTRA_PAGES = (
    ("features", "Features", "Key features and capabilities"),
    ("contact", "Contact", "Contact information and forms"),
)

_APP_NAME_PATTERNS = (
    re.compile(r"(?:create|build|make)(?:\s+a|\s+an)?\s+(.+?)\s+(?:app|application|website|site|platform|system)\b", re.I),
    re.compile(r"(?:^|\s)(.+?)\s+(?:app|application|website|site|platform|system)\b", re.I),
    re.compile(r"\bfor\s+(?:a\s+|an\s+|the\s+)?(\S+)", re.I),
)


def extract_app_name(request: str) -> str:
    for pattern in _APP_NAME_PATTERNS:
        m = pattern.search(request or "")
        if m and m[1].strip():
            words = m[1].strip().split()[:5]
            return " ".join(w[:1].upper() + w[1:] for w in words)
    return "Application"


# ----------------------------
# Validation
# ----------------------------
def validate_manifest(manifest: Manifest) -> None:
    """Raise ManifestError unless every name is safe and unique and every dependency resolves."""
    if not manifest.artifacts:
        raise ManifestError("manifest declares no files")
    seen = set()
    for spec in manifest.artifacts:
        if _safe_normalize(spec.name) != spec.name:
            raise ManifestError(f"unsafe file name: {spec.name!r}")
        if spec.name in seen:
            raise ManifestError(f"duplicate file name: {spec.name}")
        seen.add(spec.name)
    for spec in manifest.artifacts:
        for dep in spec.dependencies:
            if dep == spec.name:
                raise ManifestError(f"{spec.name} depends on itself")
            if dep not in seen:
                raise ManifestError(f"{spec.name} depends on undeclared file {dep!r}")


# ----------------------------
# Parsing
# ----------------------------
def _names(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    out = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            continue
        normalized = _safe_normalize(item)
        out.append(normalized if normalized is not None else item.strip())
    return tuple(dict.fromkeys(out))


def _artifact_from_item(item: Any) -> ArtifactSpec:
    if not isinstance(item, dict):
        raise ManifestError(f"file entry is not an object: {item!r}")
    raw_name = item.get("name") or item.get("path") or item.get("file")
    name = _safe_normalize(raw_name) if isinstance(raw_name, str) else None
    if name is None:
        raise ManifestError(f"unsafe or empty file name: {raw_name!r}")
    kind = ArtifactKind.coerce(item.get("type") or item.get("kind"), name)
    if kind is None:
        raise ManifestError(f"unsupported file type for {name}: {item.get('type')!r}")
    return ArtifactSpec(
        name=name,
        kind=kind,
        purpose=str(item.get("purpose") or "").strip(),
        dependencies=_names(item.get("dependencies")),
        linked_files=_names(item.get("linkedFiles") or item.get("linked_files")),
    )


def _navigation_from(value: Any) -> NavigationSpec:
    if not isinstance(value, dict):
        return NavigationSpec()
    routes = []
    for r in value.get("routes") or []:
        if isinstance(r, dict) and r.get("file"):
            routes.append(RouteSpec(
                path=str(r.get("path") or "/"),
                file=str(r.get("file")),
                title=str(r.get("title") or ""),
                description=str(r.get("description") or ""),
            ))
    return NavigationSpec(
        type=str(value.get("type") or "multi-page"),
        structure=str(value.get("structure") or ""),
        routes=tuple(routes),
    )


def manifest_from_dict(data: Dict[str, Any], request: str = "") -> Manifest:
    files = data.get("files")
    if isinstance(files, dict):
        files = [dict(v, name=k) if isinstance(v, dict) else {"name": k} for k, v in files.items()]
    if not isinstance(files, list):
        raise MalformedOutput("structure plan has no 'files' list")
    project_name = data.get("projectName") or data.get("project_name") or data.get("appName")
    deps = data.get("dependencies")
    return Manifest(
        project_name=str(project_name).strip() if project_name else extract_app_name(request),
        artifacts=tuple(_artifact_from_item(item) for item in files),
        dependencies=tuple(str(d) for d in deps if isinstance(d, str)) if isinstance(deps, list) else (),
        navigation=_navigation_from(data.get("navigation")),
        architecture=str(data.get("architecture") or ""),
        folder_structure=str(data.get("folderStructure") or data.get("folder_structure") or ""),
    )


# ----------------------------
# Default plan
# ----------------------------
def _default_pages(feature_spec: Optional[FeatureSpec], request: str) -> List[Tuple[str, str, str]]:
    haystack = " ".join([request] + (list(feature_spec.ui_surfaces) if feature_spec else [])).lower()
    pages = [("index", "Home", "Main landing page with overview and navigation")]
    for stem, title, purpose, triggers in PAGE_RULES:
        if any(t in haystack for t in triggers):
            pages.append((stem, title, purpose))
    if len(pages) == 1:
        pages.extend(DEFAULT_EXTRA_PAGES)
    return pages


def default_manifest(feature_spec: Optional[FeatureSpec], request: str = "") -> Manifest:
    """
    Shared stylesheet + shared script + one page per detected section.
    Every page depends on both shared files, so they land in level 0.
    """
    pages = _default_pages(feature_spec, request)
    page_names = [f"{stem}.html" for stem, _, _ in pages]
    artifacts = [
        ArtifactSpec(name=SHARED_STYLE, kind=ArtifactKind.STYLE, purpose="Shared styles for every page"),
        ArtifactSpec(name=SHARED_SCRIPT, kind=ArtifactKind.BEHAVIOR, purpose="Shared navigation and interaction logic"),
    ]
    routes = []
    for (stem, title, purpose), name in zip(pages, page_names):
        artifacts.append(ArtifactSpec(
            name=name,
            kind=ArtifactKind.MARKUP,
            purpose=purpose,
            dependencies=(SHARED_STYLE, SHARED_SCRIPT),
            linked_files=tuple(n for n in page_names if n != name),
        ))
        routes.append(RouteSpec(path="/" if stem == "index" else f"/{name}", file=name, title=title, description=purpose))
    return Manifest(
        project_name=extract_app_name(request or (feature_spec.description if feature_spec else "")),
        artifacts=tuple(artifacts),
        dependencies=("HTML5", "CSS3", "vanilla JavaScript"),
        navigation=NavigationSpec(type="multi-page", structure="Header navigation on every page", routes=tuple(routes)),
        architecture="Static multi-page site with one shared stylesheet and one shared script",
        folder_structure="\n".join(a.name for a in artifacts),
        degraded=True,
    )


# ----------------------------
# Public: plan_structure
# ----------------------------
async def plan_structure(feature_spec: FeatureSpec,
                         client: CompletionClient,
                         request: str = "",
                         allow_degraded: bool = AI_DEGRADED_PLANNING) -> Manifest:
    prompt = build_structure_prompt(feature_spec, request)
    try:
        text = await client.complete(prompt, {
            "temperature": AGENT_TEMPERATURES.get("structure"),
            "label": TASK_STRUCTURE,
        })
    except RetriesExhausted as e:
        if not allow_degraded:
            raise
        logger.warning("structure planning unavailable, using default plan: %s", e)
        return default_manifest(feature_spec, request)

    result = extract(text, STRUCTURE_KEYS, default={"degraded": True} if allow_degraded else None)
    if result.degraded:
        return default_manifest(feature_spec, request)
    value = result.value
    if isinstance(value, list):
        value = {"files": value}
    try:
        manifest = manifest_from_dict(value, request)
    except MalformedOutput:
        if not allow_degraded:
            raise
        logger.warning("structure plan incomplete (tier=%s), using default plan", result.tier)
        return default_manifest(feature_spec, request)
    validate_manifest(manifest)
    logger.info("planned %d files for %s (tier=%s)", len(manifest.artifacts), manifest.project_name, result.tier)
    return manifest

