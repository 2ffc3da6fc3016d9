"""
Tests for dependency level scheduling.
"""
import itertools

import pytest

from sitegen.core.dep_resolver import schedule, topological_order
from sitegen.core.errors import CyclicDependency, ManifestError
from sitegen.models import ArtifactKind, ArtifactSpec, Manifest


def spec(name, *deps):
    kind = ArtifactKind.coerce(None, name)
    return ArtifactSpec(name=name, kind=kind, dependencies=tuple(deps))


def manifest(*specs):
    return Manifest(project_name="Test", artifacts=tuple(specs))


def names(levels):
    return [[s.name for s in level] for level in levels]


class TestSchedule:
    def test_marketing_site_levels(self):
        m = manifest(
            spec("index.html", "styles.css"),
            spec("about.html", "styles.css"),
            spec("contact.html", "styles.css"),
            spec("styles.css"),
        )
        assert names(schedule(m)) == [["styles.css"], ["index.html", "about.html", "contact.html"]]

    def test_independent_files_share_level_zero(self):
        m = manifest(spec("a.css"), spec("b.js"), spec("c.html"))
        assert names(schedule(m)) == [["a.css", "b.js", "c.html"]]

    def test_chain_produces_one_level_per_file(self):
        m = manifest(spec("c.html", "b.js"), spec("b.js", "a.css"), spec("a.css"))
        assert names(schedule(m)) == [["a.css"], ["b.js"], ["c.html"]]

    def test_level_respects_longest_path(self):
        m = manifest(
            spec("page.html", "app.js", "styles.css"),
            spec("app.js", "styles.css"),
            spec("styles.css"),
        )
        assert names(schedule(m)) == [["styles.css"], ["app.js"], ["page.html"]]

    @pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
    def test_topological_property_for_any_declaration_order(self, order):
        base = [
            spec("styles.css"),
            spec("app.js", "styles.css"),
            spec("index.html", "styles.css", "app.js"),
            spec("about.html", "styles.css"),
        ]
        levels = schedule(manifest(*[base[i] for i in order]))
        level_of = {s.name: i for i, level in enumerate(levels) for s in level}
        for s in base:
            for dep in s.dependencies:
                assert level_of[dep] < level_of[s.name]
        flat = [s.name for s in topological_order(levels)]
        assert sorted(flat) == sorted(s.name for s in base)
        for s in base:
            for dep in s.dependencies:
                assert flat.index(dep) < flat.index(s.name)


class TestScheduleErrors:
    def test_cycle_raises_with_names(self):
        m = manifest(spec("a.js", "b.js"), spec("b.js", "a.js"), spec("styles.css"))
        with pytest.raises(CyclicDependency) as info:
            schedule(m)
        assert set(info.value.cycle) == {"a.js", "b.js"}
        assert isinstance(info.value, ManifestError)

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependency):
            schedule(manifest(spec("a.js", "a.js")))

    def test_unknown_dependency(self):
        with pytest.raises(ManifestError) as info:
            schedule(manifest(spec("index.html", "missing.css")))
        assert not isinstance(info.value, CyclicDependency)

    def test_empty_manifest_has_no_levels(self):
        assert schedule(manifest()) == []
