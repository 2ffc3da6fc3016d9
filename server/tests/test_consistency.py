"""
Tests for the cross-file reference audit and the optional consistency pass.
"""
import json

import pytest

from conftest import SCRIPT_JS, STYLE_CSS, StubCapability, make_client, page_html
from sitegen.core.consistency import audit_references, reconcile
from sitegen.core.validator import validate_style
from sitegen.models import Artifact, ArtifactKind, ArtifactSpec, ArtifactStatus, FeatureSpec, Manifest


def _artifact(name, kind, content, status=ArtifactStatus.VALID):
    return Artifact(name=name, kind=kind, content=content, status=status)


@pytest.fixture
def site():
    artifacts = [
        _artifact("styles.css", ArtifactKind.STYLE, STYLE_CSS),
        _artifact("script.js", ArtifactKind.BEHAVIOR, SCRIPT_JS),
    ] + [_artifact(p, ArtifactKind.MARKUP, page_html(p)) for p in ("index.html", "about.html", "contact.html")]
    return {a.name: a for a in artifacts}


@pytest.fixture
def manifest(site):
    return Manifest(
        project_name="Acme",
        artifacts=tuple(ArtifactSpec(name=a.name, kind=a.kind) for a in site.values()),
    )


@pytest.fixture
def feature_spec():
    return FeatureSpec(description="Acme marketing site")


def _with_page(site, page):
    return dict(site, **{"index.html": _artifact("index.html", ArtifactKind.MARKUP, page)}).values()


class TestAuditReferences:
    def test_consistent_site_has_no_warnings(self, site):
        assert audit_references(site.values()) == []

    def test_undefined_class(self, site):
        page = site["index.html"].content.replace('class="hero"', 'class="hero banner"')
        warnings = audit_references(_with_page(site, page))
        assert warnings == ["index.html: CSS classes not defined in any stylesheet: banner"]

    def test_class_used_by_script_is_not_reported(self, site):
        page = site["index.html"].content.replace('class="hero"', 'class="hero ready"')
        assert audit_references(_with_page(site, page)) == []

    def test_classes_not_checked_without_stylesheets(self, site):
        page = site["index.html"].content.replace('class="hero"', 'class="hero banner"')
        items = [a for a in _with_page(site, page) if a.kind != ArtifactKind.STYLE]
        assert not any("CSS classes" in w for w in audit_references(items))

    def test_undefined_handler(self, site):
        page = site["index.html"].content.replace("showMessage('hi')", "openModal()")
        warnings = audit_references(_with_page(site, page))
        assert warnings == ["index.html: handler functions not defined in any script: openModal"]

    def test_inline_script_defines_handler(self, site):
        page = site["index.html"].content.replace(
            "</body>", "<script>function openModal() { return 1; }</script>\n</body>"
        ).replace("showMessage('hi')", "openModal()")
        assert audit_references(_with_page(site, page)) == []

    def test_missing_local_target(self, site):
        page = site["index.html"].content.replace('href="about.html"', 'href="pricing.html#plans"')
        warnings = audit_references(_with_page(site, page))
        assert warnings == ["index.html: links to files not in the site: pricing.html"]

    def test_external_links_ignored(self, site):
        page = site["index.html"].content.replace('href="about.html"', 'href="https://example.com/about"')
        assert audit_references(_with_page(site, page)) == []


class TestReconcile:
    @pytest.mark.asyncio
    async def test_valid_edit_applied(self, site, manifest, feature_spec):
        edited = STYLE_CSS + "\n.banner {\n  color: red;\n}\n"
        reply = json.dumps({"files": [{"name": "styles.css", "content": edited}]})
        cap = StubCapability({"reconcile": reply})
        result = await reconcile(site, manifest, feature_spec, make_client(cap))
        assert set(result) == set(site)
        assert ".banner" in result["styles.css"].content
        assert "edited by consistency pass" in result["styles.css"].notes
        assert validate_style(result["styles.css"].content).ok
        assert result["index.html"] is site["index.html"]
        assert cap.tasks == ["reconcile"]

    @pytest.mark.asyncio
    async def test_mapping_reply_accepted(self, site, manifest, feature_spec):
        edited = SCRIPT_JS + "\nfunction openModal() {\n  showMessage('modal');\n}\n"
        cap = StubCapability({"reconcile": json.dumps({"script.js": edited})})
        result = await reconcile(site, manifest, feature_spec, make_client(cap))
        assert "openModal" in result["script.js"].content

    @pytest.mark.asyncio
    async def test_invalid_edit_rejected(self, site, manifest, feature_spec):
        reply = json.dumps({"files": [{"name": "styles.css", "content": "I removed everything."}]})
        result = await reconcile(site, manifest, feature_spec, make_client(StubCapability({"reconcile": reply})))
        assert result["styles.css"] is site["styles.css"]

    @pytest.mark.asyncio
    async def test_new_files_ignored(self, site, manifest, feature_spec):
        reply = json.dumps({"files": [{"name": "extra.css", "content": ".x { color: red; }"}]})
        result = await reconcile(site, manifest, feature_spec, make_client(StubCapability({"reconcile": reply})))
        assert set(result) == set(site)

    @pytest.mark.asyncio
    async def test_fallback_files_untouched(self, site, manifest, feature_spec):
        site["styles.css"] = _artifact("styles.css", ArtifactKind.STYLE, STYLE_CSS, ArtifactStatus.FALLBACK)
        reply = json.dumps({"styles.css": STYLE_CSS + "\n.more { margin: 0; }\n"})
        result = await reconcile(site, manifest, feature_spec, make_client(StubCapability({"reconcile": reply})))
        assert result["styles.css"] is site["styles.css"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [RuntimeError("boom"), "No changes needed."])
    async def test_failure_is_a_no_op(self, site, manifest, feature_spec, reply):
        result = await reconcile(site, manifest, feature_spec, make_client(StubCapability({"reconcile": reply})))
        assert result == site
        assert result is not site
