# sitegen/utils/file_helpers.py
import logging
import os
import posixpath
import shutil
import tempfile
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


# --- Helper: safe path normalize & reject traversal/abs paths ---
def _safe_normalize(p: str) -> Optional[str]:
    if not isinstance(p, str) or p.strip() == "":
        return None
    p = p.strip().replace("\\", "/")
    # disallow absolute paths (posix or drive-letter)
    if p.startswith("/") or os.path.isabs(p) or (len(p) > 1 and p[1] == ":"):
        return None
    clean = posixpath.normpath(p)
    if clean in (".", "..") or clean.startswith("../"):
        return None
    while clean.startswith("./"):
        clean = clean[2:]
    return clean


def publish_artifacts(target_dir: str, files: Mapping[str, str]) -> str:
    """
    Replace the contents of target_dir with `files` ({relative name: text}).

    Everything is written into a sibling temp directory first and swapped in
    with renames, so readers see either the previous set or the new one.
    Returns the absolute target path.
    """
    target = os.path.abspath(target_dir)
    parent = os.path.dirname(target)
    os.makedirs(parent, exist_ok=True)

    staging = tempfile.mkdtemp(prefix=".sitegen_new_", dir=parent)
    try:
        for name, content in files.items():
            rel = _safe_normalize(name)
            if rel is None:
                raise ValueError(f"unsafe artifact name: {name!r}")
            path = os.path.join(staging, *rel.split("/"))
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as fh:
                fh.write(content)
    except Exception:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    backup = None
    if os.path.exists(target):
        backup = tempfile.mkdtemp(prefix=".sitegen_old_", dir=parent)
        os.rmdir(backup)
        os.replace(target, backup)
    try:
        os.replace(staging, target)
    except OSError:
        logger.exception("publishing %s failed, restoring previous files", target)
        if backup is not None:
            os.replace(backup, target)
        shutil.rmtree(staging, ignore_errors=True)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)
    logger.info("published %d files to %s", len(files), target)
    return target
