# sitegen/core/dep_resolver.py
"""
Dependency levels for a manifest.

Level 0 holds every file with no dependencies; level k holds every remaining
file whose dependencies all sit in levels < k. Files inside one level are
independent of each other and can be generated concurrently.
"""
import logging
from typing import Dict, List, Sequence

from sitegen.core.errors import CyclicDependency, ManifestError
from sitegen.models import ArtifactSpec, Manifest

logger = logging.getLogger(__name__)


def schedule(manifest: Manifest) -> List[List[ArtifactSpec]]:
    """
    Partition the manifest into dependency levels (manifest order within a level).

    Raises ManifestError for a dependency on an undeclared name and
    CyclicDependency (naming every file that could not be placed) for cycles.
    """
    declared: Dict[str, ArtifactSpec] = {}
    for spec in manifest.artifacts:
        if spec.name in declared:
            raise ManifestError(f"duplicate file name: {spec.name}")
        declared[spec.name] = spec
    for spec in manifest.artifacts:
        for dep in spec.dependencies:
            if dep not in declared:
                raise ManifestError(f"{spec.name} depends on undeclared file {dep!r}")

    placed: Dict[str, int] = {}
    remaining = list(manifest.artifacts)
    levels: List[List[ArtifactSpec]] = []
    while remaining:
        level = [s for s in remaining if all(d in placed for d in s.dependencies)]
        if not level:
            raise CyclicDependency([s.name for s in remaining])
        index = len(levels)
        for spec in level:
            placed[spec.name] = index
        levels.append(level)
        remaining = [s for s in remaining if s.name not in placed]

    logger.debug("scheduled %d files into %d levels", len(manifest.artifacts), len(levels))
    return levels


def topological_order(levels: Sequence[Sequence[ArtifactSpec]]) -> List[ArtifactSpec]:
    return [spec for level in levels for spec in level]
