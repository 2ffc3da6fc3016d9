import os

import pytest

from sitegen.utils.file_helpers import _safe_normalize, publish_artifacts


@pytest.mark.parametrize("raw,expected", [
    ("index.html", "index.html"),
    ("./pages/about.html", "pages/about.html"),
    ("css\\styles.css", "css/styles.css"),
    ("pages/../index.html", "index.html"),
    ("../secret.html", None),
    ("/etc/passwd", None),
    ("C:/windows/x.js", None),
    ("..", None),
    ("   ", None),
    (None, None),
])
def test_safe_normalize(raw, expected):
    assert _safe_normalize(raw) == expected


def test_publish_writes_files(tmp_path):
    target = publish_artifacts(str(tmp_path / "site"), {
        "index.html": "<!DOCTYPE html>",
        "assets/styles.css": "body {}",
    })
    assert target == str(tmp_path / "site")
    assert (tmp_path / "site" / "assets" / "styles.css").read_text(encoding="utf-8") == "body {}"


def test_publish_replaces_previous_set(tmp_path):
    target = tmp_path / "site"
    publish_artifacts(str(target), {"old.html": "old", "index.html": "v1"})
    publish_artifacts(str(target), {"index.html": "v2"})
    assert sorted(os.listdir(target)) == ["index.html"]
    assert (target / "index.html").read_text(encoding="utf-8") == "v2"
    leftovers = [n for n in os.listdir(tmp_path) if n.startswith(".sitegen_")]
    assert leftovers == []


def test_publish_rejects_unsafe_names_and_keeps_old_set(tmp_path):
    target = tmp_path / "site"
    publish_artifacts(str(target), {"index.html": "v1"})
    with pytest.raises(ValueError):
        publish_artifacts(str(target), {"../escape.html": "x"})
    assert (target / "index.html").read_text(encoding="utf-8") == "v1"
    assert not (tmp_path / "escape.html").exists()
