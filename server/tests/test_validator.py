"""
Tests for content cleaning, structural validation and repair.
"""
import pytest

from conftest import SCRIPT_JS, STYLE_CSS, page_html
from sitegen.core.codegen_agent import settle_content
from sitegen.core.validator import (
    clean_content,
    repair_content,
    validate_behavior,
    validate_content,
    validate_markup,
    validate_style,
)
from sitegen.models import ArtifactKind, ArtifactStatus

MARKUP = ArtifactKind.MARKUP
STYLE = ArtifactKind.STYLE
BEHAVIOR = ArtifactKind.BEHAVIOR


class TestClean:
    def test_markup_prose_and_fences_removed(self):
        raw = "Here is your page:\n```html\n" + page_html("index.html") + "```\nEnjoy!"
        cleaned = clean_content(MARKUP, raw)
        assert cleaned.startswith("<!DOCTYPE html>")
        assert cleaned.endswith("</html>")

    def test_markup_without_fence_trims_postamble(self):
        raw = "Sure.\n" + page_html("index.html") + "\nThis page uses semantic HTML."
        cleaned = clean_content(MARKUP, raw)
        assert cleaned.startswith("<!DOCTYPE html>")
        assert cleaned.endswith("</html>")

    def test_style_keeps_class_selector(self):
        raw = "Below is the stylesheet.\n.card {\n  color: red;\n}\nThat's all."
        assert clean_content(STYLE, raw) == ".card {\n  color: red;\n}"

    def test_behavior_strips_leading_prose(self):
        raw = "This script handles navigation.\nconst x = 1;\nconsole.log(x);"
        assert clean_content(BEHAVIOR, raw) == "const x = 1;\nconsole.log(x);"

    def test_style_selector_list_across_lines_kept(self):
        reset = "*,\n*::before,\n*::after {\n  box-sizing: border-box;\n}"
        assert clean_content(STYLE, reset + "\n") == reset
        settled = settle_content(STYLE, reset)
        assert settled.status == ArtifactStatus.VALID
        assert settled.content.startswith("*,\n*::before,")

    def test_style_prose_before_selector_list_removed(self):
        raw = "Here's the stylesheet:\n/* reset */\nh1,\nh2 {\n  margin: 0;\n}"
        assert clean_content(STYLE, raw) == "/* reset */\nh1,\nh2 {\n  margin: 0;\n}"

    def test_style_leading_at_rule_kept(self):
        raw = "@import url('base.css');\n.a {\n  color: red;\n}"
        assert clean_content(STYLE, raw) == raw

    @pytest.mark.parametrize("js", [
        "initNav();\n\nfunction initNav() {\n  return 1;\n}",
        "if (window.innerWidth < 600) {\n  document.body.classList.add('small');\n}",
        "$(function () {\n  $('.nav').show();\n});",
        "'use strict';\nconst a = 1;",
    ])
    def test_behavior_code_first_line_kept(self, js):
        assert clean_content(BEHAVIOR, js) == js
        assert settle_content(BEHAVIOR, js).content == js

    def test_behavior_prose_with_apostrophe_removed(self):
        raw = "Here's the script you asked for:\n\ninitNav();\nfunction initNav() {}"
        assert clean_content(BEHAVIOR, raw) == "initNav();\nfunction initNav() {}"

    def test_crlf_normalized(self):
        assert "\r" not in clean_content(STYLE, "body {\r\n  margin: 0;\r\n}")


class TestValidate:
    def test_valid_samples(self):
        assert validate_markup(page_html("index.html")).ok
        assert validate_style(STYLE_CSS).ok
        assert validate_behavior(SCRIPT_JS).ok

    def test_empty_content_invalid_for_every_kind(self):
        for kind in ArtifactKind:
            report = validate_content(kind, "  ")
            assert not report.ok
            assert report.issues == ("empty content",)

    def test_markup_missing_skeleton(self):
        report = validate_markup("<div><p>hello</p></div>")
        assert not report.ok
        assert "missing doctype" in report.issues
        assert "missing <body>" in report.issues

    def test_markup_unclosed_tag_detected(self):
        html = page_html("index.html").replace("</section>", "")
        report = validate_markup(html)
        assert not report.ok
        assert "unclosed <section>" in report.issues

    def test_markup_ignores_void_optional_and_script_bodies(self):
        html = (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"><title>a < b</title></head>"
            "<body><ul><li>one<li>two</ul><br><img src=\"x.png\">"
            "<!-- <div> -->"
            "<script>if (a < b) { document.body.innerHTML = '<div>'; }</script>"
            "</body></html>"
        )
        assert validate_markup(html).ok

    def test_header_is_not_head(self):
        html = "<!DOCTYPE html><html><body><header>x</header></body></html>"
        assert "missing <head>" in validate_markup(html).issues

    def test_style_unbalanced(self):
        report = validate_style(".a { color: red;\n.b { color: blue; }")
        assert not report.ok
        assert any("unclosed" in issue for issue in report.issues)

    def test_style_braces_in_comments_and_strings_ignored(self):
        assert validate_style('/* { */ .a::after { content: "}"; }').ok

    def test_style_requires_a_rule(self):
        assert not validate_style("color: red;").ok

    def test_behavior_unbalanced(self):
        report = validate_behavior("function a() {\n  if (x) {\n    run();\n}")
        assert not report.ok

    def test_behavior_ignores_strings_comments_templates(self):
        js = "const s = '(';\n// )\nconst t = `${a} {`;\n/* ] */\nfunction f() { return [s, t]; }"
        assert validate_behavior(js).ok

    def test_behavior_requires_code(self):
        assert not validate_behavior("just some words").ok


class TestRepair:
    def test_fragment_becomes_document(self):
        repaired = repair_content(MARKUP, "<main><h1>Hello</h1></main>")
        assert validate_markup(repaired).ok
        assert "<h1>Hello</h1>" in repaired

    def test_truncated_document_closed(self):
        html = page_html("index.html")
        truncated = html[:html.index("</section>")]
        repaired = repair_content(MARKUP, truncated)
        assert validate_markup(repaired).ok
        assert repaired.rstrip().endswith("</html>")

    def test_stray_closer_removed(self):
        html = page_html("index.html").replace("</nav>", "</nav></div>")
        assert not validate_markup(html).ok
        repaired = repair_content(MARKUP, html)
        assert validate_markup(repaired).ok
        assert "</div>" not in repaired

    def test_style_braces_closed_and_root_added(self):
        repaired = repair_content(STYLE, ".a { color: red;\n.b { color: blue; }")
        assert validate_style(repaired).ok
        assert repaired.startswith(":root")

    def test_behavior_closers_appended(self):
        repaired = repair_content(BEHAVIOR, "function a() {\n  if (x) {\n    run(1, [2, 3]);\n")
        assert validate_behavior(repaired).ok

    def test_behavior_stray_closer_dropped(self):
        repaired = repair_content(BEHAVIOR, "const a = 1;\n}\n")
        assert validate_behavior(repaired).ok

    def test_prose_cannot_be_repaired_into_script(self):
        assert not validate_behavior(repair_content(BEHAVIOR, "I am sorry, I cannot help.")).ok

    @pytest.mark.parametrize("kind", list(ArtifactKind))
    def test_empty_stays_empty(self, kind):
        assert repair_content(kind, "") == ""
