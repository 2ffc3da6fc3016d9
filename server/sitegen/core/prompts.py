# sitegen/core/prompts.py
"""
Prompts used by the generation pipeline.

Goals:
- Force JSON-only structured outputs for the analysis and planning stages.
- Force raw file content (no fences, no commentary) for per-file generation.
- Every prompt opens with a stable "TASK: <name>" line so logs (and test doubles)
  can tell the stages apart.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sitegen.models import ArtifactKind, ArtifactSpec, FeatureSpec, HistoryEntry, Manifest

TASK_FEATURES = "feature_analysis"
TASK_STRUCTURE = "plan_structure"
TASK_RECONCILE = "reconcile"

FEATURE_KEYS = (
    "description",
    "features",
    "functionality",
    "uiSurfaces",
    "dataRequirements",
    "userTypes",
    "businessLogic",
)
STRUCTURE_KEYS = ("projectName", "files", "dependencies", "navigation", "architecture", "folderStructure")


def task_name(kind: ArtifactKind) -> str:
    return f"generate_{kind.value}"


def _dump(value: Any) -> str:
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _feature_context(spec: FeatureSpec) -> Dict[str, Any]:
    return {
        "description": spec.description,
        "features": list(spec.features),
        "functionality": list(spec.functional_requirements),
        "uiSurfaces": list(spec.ui_surfaces),
        "dataRequirements": list(spec.data_requirements),
        "userTypes": list(spec.user_types),
        "businessLogic": list(spec.business_logic),
    }


def _manifest_summary(manifest: Manifest) -> List[Dict[str, Any]]:
    return [
        {
            "name": a.name,
            "type": a.kind.value,
            "purpose": a.purpose,
            "dependencies": list(a.dependencies),
        }
        for a in manifest.artifacts
    ]


def build_feature_prompt(request: str, history: Optional[Sequence[HistoryEntry]] = None) -> str:
    """
    Feature analysis prompt. Earlier runs (most recent last) are included as
    short "Previous: prompt -> plan" lines.
    """
    shape = {
        "description": "Detailed explanation of the application's purpose and goals",
        "features": ["Every feature, explicit and implied"],
        "functionality": ["Core functions the app must perform"],
        "uiSurfaces": ["Pages, screens and major UI components"],
        "dataRequirements": ["Data the app stores, shows or edits"],
        "userTypes": ["User roles"],
        "businessLogic": ["Rules, calculations and workflows"],
    }
    lines = [
        f"TASK: {TASK_FEATURES}",
        "You are an expert system architect analysing a request for a static web application.",
        "OUTPUT RULES:",
        " - Return EXACTLY one valid JSON object and nothing else.",
        " - Every list value is an ARRAY OF STRINGS.",
        " - JSON shape:",
        _dump(shape),
        "",
        "Context:",
        f"User request:\n{request}",
    ]
    if history:
        lines.append("")
        lines.append("Earlier requests in this session:")
        for entry in history:
            lines.append(f"Previous: {entry.prompt} -> {'; '.join(entry.plan)}")
    lines += [
        "",
        "Task:",
        "- Analyse the request as if building a production application.",
        "- Include implied features a user would expect (navigation, responsive layout, feedback states).",
        "- Keep each list item short and concrete.",
    ]
    return "\n".join(lines)


def build_structure_prompt(feature_spec: FeatureSpec, request: str = "") -> str:
    shape = {
        "projectName": "Short human readable name",
        "files": [
            {
                "name": "index.html",
                "type": "html | css | js",
                "purpose": "What this file is responsible for",
                "dependencies": ["styles.css", "script.js"],
                "linkedFiles": ["about.html"],
            }
        ],
        "dependencies": ["Technologies used, e.g. vanilla JavaScript, CSS Grid"],
        "navigation": {
            "type": "multi-page | single-page",
            "structure": "How pages link together",
            "routes": [{"path": "/", "file": "index.html", "title": "Home", "description": "Landing page"}],
        },
        "architecture": "One paragraph architecture overview",
        "folderStructure": "Flat list of files",
    }
    lines = [
        f"TASK: {TASK_STRUCTURE}",
        "You are planning the file structure of a static website (HTML, CSS, JavaScript only).",
        "OUTPUT RULES:",
        " - Return EXACTLY one valid JSON object and nothing else.",
        " - JSON shape:",
        _dump(shape),
        "",
        "Context:",
        f"User request:\n{request}",
        "",
        f"Feature analysis:\n{_dump(_feature_context(feature_spec))}",
        "",
        "Task:",
        "- Produce one HTML file per page the user needs; the landing page is index.html.",
        "- Use exactly one shared stylesheet (styles.css) and list it in the dependencies of every HTML file.",
        "- Put shared behaviour in script.js; add further .js files only for large, separate features.",
        "- 'dependencies' of a file are names of OTHER files in 'files' whose content it needs; never the file itself.",
        "- Never reference a file that is not listed in 'files'. Do not use folders or absolute paths.",
        "- CSS files must not depend on HTML files; JS files may depend on CSS files only if they toggle its classes.",
    ]
    return "\n".join(lines)


_KIND_INSTRUCTIONS: Dict[ArtifactKind, List[str]] = {
    ArtifactKind.MARKUP: [
        "Return a COMPLETE HTML5 document starting with <!DOCTYPE html>.",
        "Include <html>, <head> (meta charset, viewport, title) and <body>; close every tag you open.",
        "Link every stylesheet listed in the dependencies with <link rel=\"stylesheet\" href=\"...\">.",
        "Load every script listed in the dependencies with <script src=\"...\" defer></script>.",
        "Add a navigation bar linking to every page of the site using the file names given.",
        "Use semantic HTML5 elements and accessible labels.",
        "Only use CSS classes defined in the provided stylesheets and only call functions defined in the provided scripts.",
    ],
    ArtifactKind.STYLE: [
        "Return ONLY CSS.",
        "Start with a :root block of CSS custom properties (colors, spacing, fonts).",
        "Style every page of the site; include responsive rules with media queries.",
        "Use class names that describe the content (.navbar, .hero, .card, ...).",
        "Balance every brace; do not use preprocessor syntax.",
    ],
    ArtifactKind.BEHAVIOR: [
        "Return ONLY JavaScript (ES6+), no <script> tags.",
        "Wrap setup code in a DOMContentLoaded listener.",
        "Guard every DOM lookup so the script works on every page that loads it.",
        "Only reference CSS classes and element ids that exist in the provided files.",
        "Expose functions used by inline handlers on window.",
        "Handle errors gracefully; no external libraries.",
    ],
}


def build_artifact_prompt(kind: ArtifactKind,
                          spec: ArtifactSpec,
                          feature_spec: FeatureSpec,
                          manifest: Manifest,
                          dependency_contents: Mapping[str, str]) -> str:
    """
    Single template for every file kind; only the instruction block differs.
    The full content of each already-generated dependency is embedded verbatim.
    """
    lines = [
        f"TASK: {task_name(kind)}",
        f"You are an expert front-end developer writing the file '{spec.name}' for the site '{manifest.project_name}'.",
        "OUTPUT RULES:",
        " - Return ONLY the raw file content. No markdown fences, no explanations.",
        "",
        "Context:",
        f"File purpose: {spec.purpose or 'not specified'}",
        f"App analysis:\n{_dump(_feature_context(feature_spec))}",
        "",
        f"Site files:\n{_dump(_manifest_summary(manifest))}",
        "",
        f"Navigation ({manifest.navigation.type}):\n{_dump([r.model_dump() for r in manifest.navigation.routes])}",
    ]
    if spec.linked_files:
        lines.append(f"Links from this file: {', '.join(spec.linked_files)}")
    for dep_name, dep_content in dependency_contents.items():
        lines.append("")
        lines.append(f"--- BEGIN {dep_name} ---")
        lines.append(dep_content)
        lines.append(f"--- END {dep_name} ---")
    lines += ["", "REQUIREMENTS:"]
    for i, rule in enumerate(_KIND_INSTRUCTIONS[kind], start=1):
        lines.append(f"{i}. {rule}")
    return "\n".join(lines)


def build_consistency_prompt(files: Mapping[str, str], manifest: Manifest, feature_spec: FeatureSpec,
                             issues: Sequence[str] = ()) -> str:
    lines = [
        f"TASK: {TASK_RECONCILE}",
        "You are reviewing a generated static website for cross-file consistency.",
        "OUTPUT RULES:",
        " - Return EXACTLY one JSON object: {\"files\": {\"<file name>\": \"<full corrected content>\"}}.",
        " - Only include files you change. Never add or rename files.",
        " - Content is the full file, not a diff.",
        "",
        "Context:",
        f"App: {feature_spec.description}",
        f"Site files:\n{_dump(_manifest_summary(manifest))}",
    ]
    if issues:
        lines.append("")
        lines.append("Detected problems:")
        lines += [f"- {issue}" for issue in issues]
    for name, content in files.items():
        lines.append("")
        lines.append(f"--- BEGIN {name} ---")
        lines.append(content)
        lines.append(f"--- END {name} ---")
    lines += [
        "",
        "Task:",
        "- Make every CSS class used in HTML exist in the stylesheet.",
        "- Make every function called from HTML exist in the scripts.",
        "- Make every navigation link point at a listed page.",
        "- Keep everything else unchanged.",
    ]
    return "\n".join(lines)
