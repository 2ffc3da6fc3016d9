"""
Tests for the tiered structured-output extractor.
"""
import json

import pytest

from sitegen.core.errors import MalformedOutput
from sitegen.core.output_parser import extract, rewrite_json_text, slice_structured, strip_fences


class TestTiers:
    def test_direct_parse(self):
        result = extract('{"features": ["a", "b"]}')
        assert result.value == {"features": ["a", "b"]}
        assert result.tier == "direct"
        assert not result.degraded

    def test_fenced_json_with_prose(self):
        text = 'Sure! Here is the plan:\n```json\n{"description": "shop"}\n```\nLet me know.'
        result = extract(text)
        assert result.value == {"description": "shop"}
        assert result.tier == "slice"

    def test_top_level_array(self):
        result = extract("Files:\n[\"a.html\", \"b.css\"]")
        assert result.value == ["a.html", "b.css"]

    def test_trailing_commas_and_bare_keys(self):
        text = '{description: "todo app", features: ["add", "remove",],}'
        result = extract(text)
        assert result.tier == "rewrite"
        assert result.value == {"description": "todo app", "features": ["add", "remove"]}

    def test_partial_extraction_of_expected_keys(self):
        text = 'analysis {"features": ["search", "filters"] and "description": "catalog" (truncated'
        result = extract(text, expected_keys=("features", "description", "userTypes"))
        assert result.tier == "partial"
        assert result.value == {"features": ["search", "filters"], "description": "catalog"}

    def test_partial_salvages_unterminated_list(self):
        text = '{"description": "blog", "features": ["posts", "tags", "comm'
        result = extract(text, expected_keys=("description", "features"))
        assert result.value["description"] == "blog"
        assert result.value["features"][:2] == ["posts", "tags"]

    def test_partial_skips_key_mentioned_inside_earlier_value(self):
        text = '{"description": "features: search and cart", "features": ["search", "cart"], "oops'
        result = extract(text, expected_keys=("description", "features"))
        assert result.tier == "partial"
        assert result.value["features"] == ["search", "cart"]
        assert result.value["description"] == "features: search and cart"

    def test_partial_does_not_match_key_suffix(self):
        text = '"key_features": ["x"] broken {'
        with pytest.raises(MalformedOutput):
            extract(text, expected_keys=("features",))


class TestLosslessStrings:
    def test_embedded_newlines_survive(self):
        text = '{"content": "line one\nline two\n\tindented", "name": "a"}'
        result = extract(text)
        assert result.value["content"] == "line one\nline two\n\tindented"
        assert result.value["name"] == "a"

    def test_escaped_quotes_inside_strings(self):
        payload = {"html": '<a href="x.html">say "hi"</a>\n'}
        result = extract("```json\n" + json.dumps(payload) + "\n```")
        assert result.value == payload

    def test_fences_inside_string_values_survive(self):
        payload = {"files": {"readme.js": "// usage:\n// ```js\n// init()\n// ```\n"}}
        result = extract("```json\n" + json.dumps(payload) + "\n```", ("files",))
        assert result.value == payload

    def test_fences_inside_raw_multiline_string_survive(self):
        text = '```json\n{"files": {"notes.md": "Run:\n```\nnpm start\n```\n"}}\n```'
        result = extract(text, ("files",))
        assert result.value == {"files": {"notes.md": "Run:\n```\nnpm start\n```\n"}}

    def test_newlines_outside_strings_collapse(self):
        assert rewrite_json_text('{\n"a":\n1\n}') == '{ "a": 1 }'


class TestFailures:
    @pytest.mark.parametrize("text", ["", "   ", "I could not produce JSON for this request."])
    def test_empty_and_prose_raise(self, text):
        with pytest.raises(MalformedOutput):
            extract(text, expected_keys=("features",))

    def test_default_is_returned_degraded(self):
        result = extract("no json here", expected_keys=("files",), default={"files": []})
        assert result.degraded
        assert result.tier == "default"
        assert result.value == {"files": []}

    def test_scalar_json_is_not_structured(self):
        with pytest.raises(MalformedOutput):
            extract("42")


class TestHelpers:
    def test_strip_fences(self):
        assert strip_fences("```json\n{}\n```") == "{}"
        assert strip_fences('{"a": "```x```"}') == '{"a": "```x```"}'

    def test_slice_prefers_object(self):
        assert slice_structured('x [1] {"a": [2]} y') == '{"a": [2]}'
        assert slice_structured("nothing") is None
