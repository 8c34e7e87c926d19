"""Tests for Tree path resolution, writes and the serialization toolkit."""

import json
import logging

import pytest

from signaltree import (
    Boundary,
    InvariantViolation,
    MemoryStorage,
    PathNotFound,
    SerializationFault,
    Signal,
    Tree,
)
from signaltree.traversal import Mode, ext, next_mode, parse_path, resolve


class TestPathGrammar:
    def test_parse_trims_slashes(self):
        assert parse_path("/a/b.arr/0/") == ["a", "b.arr", "0"]
        assert parse_path("a") == ["a"]
        assert parse_path("///") == []

    def test_parse_rejects_empty_segments(self):
        with pytest.raises(PathNotFound):
            parse_path("/a//b")

    def test_ext(self):
        assert ext("users.arr") == "arr"
        assert ext("profile.obj") == "obj"
        assert ext("plain") == ""
        assert Tree.is_boundary_segment("x.obj")
        assert not Tree.is_boundary_segment("x.txt")
        assert not Tree.is_boundary_segment(0)

    def test_mode_transitions(self):
        assert next_mode(Mode.PLAIN, "app") is Mode.PLAIN
        assert next_mode(Mode.PLAIN, "users.arr") is Mode.EXTENSION
        assert next_mode(Mode.EXTENSION, "0") is Mode.SIGNAL
        assert next_mode(Mode.SIGNAL, "name") is Mode.SIGNAL
        assert next_mode(Mode.SIGNAL, "tags.arr") is Mode.SIGNAL


class TestWrite:
    def test_boundary_materialization(self):
        tree = Tree("t")
        leaf = tree.write("/app/users.arr/0/name", "Ada")
        assert isinstance(leaf, Signal)
        assert leaf.value == "Ada"

        boundary = tree.data["app"]["users.arr"]
        assert isinstance(boundary, Boundary)
        assert boundary.ext == "arr"

        users = tree.read("/app/users.arr")
        assert users is boundary.signal
        assert isinstance(users.value, list)
        assert tree.designalize(users.value) == [{"name": "Ada"}]

    def test_plain_segments_own_no_signal(self):
        tree = Tree("t")
        tree.write("/app/settings.obj/theme", "dark")
        assert isinstance(tree.data["app"], dict)
        assert tree.read("/app") == {"settings.obj": tree.data["app"]["settings.obj"]}

    def test_write_to_boundary_replaces_value(self):
        tree = Tree("t")
        signal = tree.write("/app/tags.arr", ["a", "b"])
        assert signal.value == ["a", "b"]
        assert tree.read("/app/tags.arr") is signal

    def test_object_boundary(self):
        tree = Tree("t")
        tree.write("/app/profile.obj/name", "Grace")
        profile = tree.read("/app/profile.obj")
        assert isinstance(profile.value, dict)
        assert tree.read("/app/profile.obj/name").value == "Grace"

    def test_rewrite_reuses_leaf(self):
        tree = Tree("t")
        first = tree.write("/app/users.arr/0/name", "Ada")
        second = tree.write("/app/users.arr/0/name", "Grace")
        assert first is second
        assert first.value == "Grace"
        assert first.rev == 2

    def test_list_padding(self):
        tree = Tree("t")
        tree.write("/app/users.arr/2/name", "Third")
        users = tree.read("/app/users.arr").value
        assert len(users) == 3
        assert users[0] is None and users[1] is None
        assert isinstance(users[2], Signal)

    def test_nested_boundary_inside_value(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/tags.arr/1", "admin")
        tags = tree.read("/app/users.arr/0/tags.arr")
        assert isinstance(tags.value, list)
        assert tree.designalize(tags) == [None, "admin"]

    def test_boundary_growth_is_persisted(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/name", "Ada")
        users = tree.read("/app/users.arr")
        record = json.loads(tree.storage.get(users.key))
        assert record["rev"] == users.rev == 1
        assert len(record["value"]) == 1

    def test_boundary_growth_notifies(self):
        tree = Tree("t")
        users = tree.write("/app/users.arr", [])
        log = []
        users.subscribe(lambda v: log.append(len(v)), autorun=False)
        tree.write("/app/users.arr/0/name", "Ada")
        assert log == [1]

    def test_plain_terminal_rejected(self):
        tree = Tree("t")
        with pytest.raises(PathNotFound):
            tree.write("/app/settings", 1)
        with pytest.raises(PathNotFound):
            tree.write("/", 1)

    def test_malformed_path(self):
        tree = Tree("t")
        with pytest.raises(PathNotFound):
            tree.write("/app//users.arr", 1)

    def test_non_index_into_list(self):
        tree = Tree("t")
        with pytest.raises(PathNotFound):
            tree.write("/app/users.arr/first/name", "Ada")
        # only the boundary signal was allocated
        assert len(tree.registry) == 1

    def test_negative_index(self):
        tree = Tree("t")
        with pytest.raises(PathNotFound):
            tree.write("/app/users.arr/-1/name", "Ada")

    def test_cannot_descend_into_scalar(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/name", "Ada")
        with pytest.raises(PathNotFound):
            tree.write("/app/users.arr/0/name/first", "A")

    def test_signal_step_on_non_signal_is_invariant_violation(self):
        tree = Tree("t")
        tree.write("/app/nums.arr", [1, 2])
        with pytest.raises(InvariantViolation):
            tree.write("/app/nums.arr/0/x", "boom")

    def test_raw_element_terminal_rejected(self):
        tree = Tree("t")
        tree.write("/app/nums.arr", [1, 2])
        with pytest.raises(PathNotFound):
            tree.write("/app/nums.arr/0", 5)


class TestRead:
    def test_missing_returns_none_without_creating(self):
        tree = Tree("t")
        assert tree.read("/app/users.arr/0/name") is None
        assert tree.data == {}
        assert len(tree.registry) == 0

    def test_partial_miss(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/name", "Ada")
        assert tree.read("/app/users.arr/5/name") is None
        assert tree.read("/app/users.arr/0/email") is None
        assert tree.read("/app/users.arr/x") is None
        assert tree.read("/app/users.arr/0/name/deeper") is None
        assert tree.read("/other") is None

    def test_raw_contained_value(self):
        tree = Tree("t")
        tree.write("/app/nums.arr", [10, 20])
        assert tree.read("/app/nums.arr/1") == 20

    def test_root(self):
        tree = Tree("t")
        assert tree.read("/") is tree.data

    def test_read_does_not_notify(self):
        tree = Tree("t")
        users = tree.write("/app/users.arr", [])
        log = []
        users.subscribe(log.append, autorun=False)
        tree.read("/app/users.arr/0")
        assert log == []

    def test_resolve_directly(self):
        root = {"a": {}}
        assert resolve(root, "/a") == {}
        assert resolve(root, "/a/b") is None


class TestAllocation:
    def test_signals_come_from_registry(self):
        tree = Tree("t")
        leaf = tree.write("/app/users.arr/0/name", "Ada")
        assert tree.registry.get(leaf.name) is leaf
        assert leaf.domain == "t"
        # boundary, element, leaf
        assert len(tree.registry) == 3

    def test_tree_signals_do_not_synchronize_by_default(self):
        tree = Tree("t")
        leaf = tree.write("/app/users.arr/0/name", "Ada")
        assert leaf.config.persistence
        assert not leaf.config.synchronization

    def test_signal_options(self):
        tree = Tree("t", signal_options={"persistence": False})
        leaf = tree.write("/app/list.arr/0", "x")
        assert not leaf.config.persistence


class TestSerialization:
    def test_round_trip(self):
        tree = Tree("t")
        data = {"name": "Ada", "tags": ["math", "engines"], "meta": {"born": 1815, "alive": False}}
        assert tree.designalize(tree.signalify(data)) == data

    def test_signalify_wraps_every_node(self):
        tree = Tree("t")
        out = tree.signalify({"a": [1, {"b": 2}]})
        assert isinstance(out, dict)
        a = out["a"]
        assert isinstance(a, Signal)
        assert a.config.structural
        assert isinstance(a.peek()[0], Signal)
        assert a.peek()[0].peek() == 1
        assert isinstance(a.peek()[1].peek()["b"], Signal)

    def test_signalify_not_bare(self):
        tree = Tree("t")
        out = tree.signalify(5, bare=False)
        assert isinstance(out, Signal)
        assert out.peek() == 5
        assert tree.signalify(5) == 5

    def test_signalify_rejects_cycles(self):
        tree = Tree("t")
        data = {}
        data["self"] = data
        with pytest.raises(SerializationFault):
            tree.signalify(data)

    def test_designalize_none_payload(self):
        tree = Tree("t")
        assert tree.designalize({"x": Signal(None)}) == {"x": None}

    def test_create(self):
        tree = Tree("t")
        tree.create("/app/users.arr", [{"name": "Ada"}, {"name": "Grace"}])
        assert tree.read("/app/users.arr/1/name").value == "Grace"
        assert tree.designalize() == {"app": {"users.arr": [{"name": "Ada"}, {"name": "Grace"}]}}

    def test_flatten(self):
        tree = Tree("t")
        tree.create("/app/users.arr", [{"name": "Ada", "pets.arr": ["cat"]}])
        tree.create("/app/profile.obj", {"theme": "dark"})
        assert tree.flatten() == [
            ("create", "/app/users.arr", [{"name": "Ada", "pets.arr": ["cat"]}]),
            ("create", "/app/profile.obj", {"theme": "dark"}),
        ]

    def test_to_json_and_stringify(self):
        tree = Tree("t")
        tree.write("/app/tags.arr", ["x"])
        out = tree.to_json()
        node = out["app"]["tags.arr"]
        assert node["ext"] == "arr"
        assert node["signal"]["val"] == {"type": "array", "key": None, "val": ["x"]}
        assert json.loads(tree.stringify()) == out

    def test_save_load_round_trip(self):
        original = Tree("t")
        original.create("/app/users.arr", [{"name": "Ada"}])
        original.write("/app/profile.obj/theme", "dark")

        copy = Tree("t2")
        assert copy.load(json.loads(original.save())) == 2
        assert copy.designalize() == original.designalize()

    def test_persist_and_hydrate(self, caplog):
        medium = MemoryStorage()
        tree = Tree("t", medium.connect())
        tree.create("/app/users.arr", [{"name": "Ada"}])
        with caplog.at_level(logging.INFO, logger="signaltree.tree"):
            tree.persist()

        restored = Tree("t", medium.connect())
        with caplog.at_level(logging.INFO, logger="signaltree.tree"):
            assert restored.load() == 1
        assert restored.read("/app/users.arr/0/name").value == "Ada"
        assert "Persisted tree 't'" in caplog.text
        assert "Loaded 1 boundary path(s)" in caplog.text

    def test_load_nothing(self):
        tree = Tree("t")
        assert tree.hydrated() is None
        assert tree.load() == 0


class TestLifecycle:
    def test_clear(self):
        tree = Tree("t")
        leaf = tree.write("/app/users.arr/0/name", "Ada")
        tree.persist()
        tree.clear()
        assert tree.data == {}
        assert len(tree.registry) == 0
        assert leaf.disposed
        assert tree.hydrated() is None

    def test_clear_removes_signal_records(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/name", "Ada")
        assert len(tree.storage.medium) == 3
        tree.clear()
        assert len(tree.storage.medium) == 0

    def test_dispose_keeps_only_the_snapshot(self):
        tree = Tree("t")
        tree.write("/app/users.arr/0/name", "Ada")
        tree.persist()
        tree.dispose()
        assert tree.storage.medium.keys() == ["t"]

    def test_dispose_runs_disposables(self):
        tree = Tree("t")
        calls = []
        tree.add_disposable(lambda: calls.append(1))
        leaf = tree.write("/a.obj/k", 1)
        tree.dispose()
        assert calls == [1]
        assert leaf.disposed

    def test_repr(self):
        assert repr(Tree("t")) == "Tree('t', signals=0)"
