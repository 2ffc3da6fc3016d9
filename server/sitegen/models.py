# sitegen/models.py
import os
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# -------------------------
# Pipeline domain models
# -------------------------
class ArtifactKind(str, Enum):
    MARKUP = "markup"
    STYLE = "style"
    BEHAVIOR = "behavior"

    @property
    def extension(self) -> str:
        return _KIND_EXTENSIONS[self]

    @classmethod
    def coerce(cls, value: Any, name: str = "") -> Optional["ArtifactKind"]:
        """
        Map a model-supplied kind ("html", "css", "js", "markup", ...) to an
        ArtifactKind, falling back to the file extension of `name`.
        Returns None when neither resolves.
        """
        if isinstance(value, ArtifactKind):
            return value
        if isinstance(value, str):
            found = _KIND_ALIASES.get(value.strip().lower())
            if found is not None:
                return found
        ext = os.path.splitext(name or "")[1].lower()
        return _EXTENSION_KINDS.get(ext)


_KIND_ALIASES = {
    "markup": ArtifactKind.MARKUP,
    "html": ArtifactKind.MARKUP,
    "page": ArtifactKind.MARKUP,
    "style": ArtifactKind.STYLE,
    "css": ArtifactKind.STYLE,
    "stylesheet": ArtifactKind.STYLE,
    "behavior": ArtifactKind.BEHAVIOR,
    "behaviour": ArtifactKind.BEHAVIOR,
    "js": ArtifactKind.BEHAVIOR,
    "javascript": ArtifactKind.BEHAVIOR,
    "script": ArtifactKind.BEHAVIOR,
}
_KIND_EXTENSIONS = {
    ArtifactKind.MARKUP: ".html",
    ArtifactKind.STYLE: ".css",
    ArtifactKind.BEHAVIOR: ".js",
}
_EXTENSION_KINDS = {
    ".html": ArtifactKind.MARKUP,
    ".htm": ArtifactKind.MARKUP,
    ".css": ArtifactKind.STYLE,
    ".js": ArtifactKind.BEHAVIOR,
    ".mjs": ArtifactKind.BEHAVIOR,
}


class FeatureSpec(BaseModel):
    """Structured reading of the user's request. Created once per run."""
    model_config = ConfigDict(frozen=True)

    description: str
    features: Tuple[str, ...] = ()
    functional_requirements: Tuple[str, ...] = ()
    ui_surfaces: Tuple[str, ...] = ()
    data_requirements: Tuple[str, ...] = ()
    user_types: Tuple[str, ...] = ()
    business_logic: Tuple[str, ...] = ()
    degraded: bool = False


class ArtifactSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: ArtifactKind
    purpose: str = ""
    dependencies: Tuple[str, ...] = ()
    linked_files: Tuple[str, ...] = ()


class RouteSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    file: str
    title: str = ""
    description: str = ""


class NavigationSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "multi-page"
    structure: str = ""
    routes: Tuple[RouteSpec, ...] = ()


class Manifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_name: str = "Application"
    artifacts: Tuple[ArtifactSpec, ...] = ()
    dependencies: Tuple[str, ...] = ()
    navigation: NavigationSpec = NavigationSpec()
    architecture: str = ""
    folder_structure: str = ""
    degraded: bool = False

    def names(self) -> List[str]:
        return [a.name for a in self.artifacts]

    def get(self, name: str) -> Optional[ArtifactSpec]:
        for a in self.artifacts:
            if a.name == name:
                return a
        return None

    def by_kind(self, kind: ArtifactKind) -> List[ArtifactSpec]:
        return [a for a in self.artifacts if a.kind == kind]


class ArtifactStatus(str, Enum):
    VALID = "valid"
    REPAIRED = "repaired"
    FALLBACK = "fallback"


class Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: ArtifactKind
    content: str
    status: ArtifactStatus
    notes: Tuple[str, ...] = ()


class PipelineState(str, Enum):
    EXTRACTING = "extracting"
    PLANNING = "planning"
    SCHEDULED = "scheduled"
    GENERATING = "generating"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    detail: str = ""
    state: Optional[PipelineState] = None
    level: Optional[int] = None
    timestamp: float = Field(default_factory=time.time)


class PipelineRun(BaseModel):
    """
    Mutable record of one pipeline execution. Only the orchestrator writes to it;
    artifact slots are write-once.
    """
    request: str
    state: PipelineState = PipelineState.EXTRACTING
    feature_spec: Optional[FeatureSpec] = None
    manifest: Optional[Manifest] = None
    levels: List[List[ArtifactSpec]] = Field(default_factory=list)
    current_level: Optional[int] = None
    artifacts: Dict[str, Artifact] = Field(default_factory=dict)
    events: List[ProgressEvent] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    def record_artifact(self, artifact: Artifact) -> None:
        if artifact.name in self.artifacts:
            raise ValueError(f"artifact already recorded: {artifact.name}")
        self.artifacts[artifact.name] = artifact

    def replace_artifacts(self, artifacts: Dict[str, Artifact]) -> None:
        """Swap in edited artifacts; the set of names must not change."""
        if set(artifacts) != set(self.artifacts):
            raise ValueError("replacement must keep the same artifact names")
        self.artifacts = dict(artifacts)

    def files(self) -> List[Artifact]:
        """Artifacts in manifest order (stable across runs)."""
        if self.manifest is None:
            return list(self.artifacts.values())
        return [self.artifacts[n] for n in self.manifest.names() if n in self.artifacts]

    def fallback_names(self) -> List[str]:
        return [a.name for a in self.files() if a.status == ArtifactStatus.FALLBACK]

    def plan(self) -> List[str]:
        lines: List[str] = []
        if self.feature_spec is not None:
            lines.append(f"Analyzed app requirements: {self.feature_spec.description}")
            lines.append(f"Identified {len(self.feature_spec.features)} key features")
        if self.manifest is not None:
            lines.append(f"Planned {len(self.manifest.artifacts)} files in {len(self.levels)} levels")
            lines.append(f"Implemented {self.manifest.navigation.type} navigation")
        if self.artifacts:
            counts = {s: 0 for s in ArtifactStatus}
            for a in self.artifacts.values():
                counts[a.status] += 1
            lines.append(
                "Generated {} files ({} valid, {} repaired, {} fallback)".format(
                    len(self.artifacts),
                    counts[ArtifactStatus.VALID],
                    counts[ArtifactStatus.REPAIRED],
                    counts[ArtifactStatus.FALLBACK],
                )
            )
        return lines


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    plan: Tuple[str, ...] = ()


class GenerationHistory(BaseModel):
    """Caller-owned record of earlier runs, used as context for new requests."""
    entries: List[HistoryEntry] = Field(default_factory=list)

    def add(self, prompt: str, plan: List[str]) -> None:
        self.entries.append(HistoryEntry(prompt=prompt, plan=tuple(plan)))

    def recent(self, limit: int = 3) -> List[HistoryEntry]:
        if limit <= 0:
            return []
        return self.entries[-limit:]


# -------------------------
# API models
# -------------------------
class GenerateRequest(BaseModel):
    request: str
    options: Optional[Dict[str, Any]] = {}

class FileOut(BaseModel):
    path: str
    content: str
    status: ArtifactStatus = ArtifactStatus.VALID

class GenerateResponse(BaseModel):
    project_name: str
    files: List[FileOut]
    metadata: Optional[Dict[str, Any]] = {}
