"""Tests for the DryRunPlatformClient

NOTE: The majority of the functionality is exercised by the component and
    driver tests, so the tests here only cover elements that are particularly
    delicate and/or not covered elsewhere.
"""
# Standard
from unittest.mock import Mock
import os

# Third Party
import pytest
import yaml

# Local
from stor8.platform import DryRunPlatformClient
from stor8.platform.dry_run_platform_client import match_selector
from stor8.test_helpers.helpers import TEST_NAMESPACE
from stor8.version import PlatformVersion

## Helpers #####################################################################


def make_obj(kind="Foo", name="foobar", namespace=TEST_NAMESPACE, spec=None, **labels):
    return {
        "apiVersion": "foo.bar/v1",
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels or {"app": "foobar", "run": "frontend"},
        },
        "spec": spec if spec is not None else {"a": 1},
    }


## Tests #######################################################################


def test_create_is_idempotent():
    """Make sure creating an existing object succeeds without changing it"""
    client = DryRunPlatformClient()
    assert client.create(make_obj()) == (True, True)
    assert client.create(make_obj(spec={"a": 2})) == (True, False)
    _, current = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    assert current["spec"] == {"a": 1}


def test_apply_changes():
    """Make sure apply merges and reports changes only when content differs"""
    client = DryRunPlatformClient()
    assert client.apply(make_obj()) == (True, True)
    assert client.apply(make_obj()) == (True, False)
    assert client.apply(make_obj(spec={"b": 2})) == (True, True)
    _, current = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    assert current["spec"] == {"a": 1, "b": 2}


def test_generated_metadata_stable():
    """Make sure the uid and creation time survive updates"""
    client = DryRunPlatformClient()
    client.create(make_obj())
    _, first = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    client.apply(make_obj(spec={"c": 3}))
    _, second = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    assert first["metadata"]["uid"] == second["metadata"]["uid"]
    assert (
        first["metadata"]["creationTimestamp"]
        == second["metadata"]["creationTimestamp"]
    )


def test_delete_is_idempotent():
    """Make sure deleting an absent object succeeds without a change"""
    client = DryRunPlatformClient(resources=[make_obj()])
    assert client.delete("Foo", "foobar", TEST_NAMESPACE) == (True, True)
    assert client.delete("Foo", "foobar", TEST_NAMESPACE) == (True, False)
    assert client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE) == (
        True,
        None,
    )


def test_api_version_scoping():
    """Make sure api_version narrows lookups"""
    client = DryRunPlatformClient(resources=[make_obj()])
    assert client.get_object_current_state(
        "Foo", "foobar", TEST_NAMESPACE, "foo.bar/v1"
    )[1]
    assert (
        client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE, "foo.bar/v2")[
            1
        ]
        is None
    )
    assert client.delete("Foo", "foobar", TEST_NAMESPACE, "foo.bar/v2") == (
        True,
        False,
    )


def test_returned_state_is_a_copy():
    """Make sure callers cannot mutate the stored state"""
    client = DryRunPlatformClient(resources=[make_obj()])
    _, current = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    current["spec"]["a"] = 100
    _, current = client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    assert current["spec"]["a"] == 1


def test_set_status():
    """Make sure status can be set on existing objects only"""
    client = DryRunPlatformClient(resources=[make_obj()])
    assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"phase": "Ready"}) == (
        True,
        True,
    )
    assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"phase": "Ready"}) == (
        True,
        False,
    )
    assert client.set_status("Foo", "missing", TEST_NAMESPACE, {}) == (False, False)


def test_get_version():
    assert DryRunPlatformClient().get_version() == PlatformVersion(1, 25)
    assert DryRunPlatformClient(platform_version="v1.14.2").get_version() == (
        PlatformVersion(1, 14, 2)
    )


def test_watches_triggered():
    """Make sure registered watches fire for matching creates and changes only"""
    client = DryRunPlatformClient()
    kind_watch = Mock()
    name_watch = Mock()
    other_watch = Mock()
    client.register_watch("Foo", kind_watch)
    client.register_watch("Foo", name_watch, name="foobar", namespace=TEST_NAMESPACE)
    client.register_watch("Bar", other_watch)

    client.create(make_obj())
    client.apply(make_obj())
    client.apply(make_obj(spec={"a": 5}))
    client.create(make_obj(name="other"))

    assert kind_watch.call_count == 3
    assert name_watch.call_count == 2
    other_watch.assert_not_called()
    assert name_watch.call_args[0][0]["spec"] == {"a": 5}


def test_delete_watches_triggered():
    client = DryRunPlatformClient(resources=[make_obj()])
    delete_watch = Mock()
    client.register_delete_watch("Foo", delete_watch)
    client.delete("Foo", "foobar", TEST_NAMESPACE)
    client.delete("Foo", "foobar", TEST_NAMESPACE)
    delete_watch.assert_called_once()


def test_resource_dir(tmp_path):
    """Make sure resources are loaded from every yaml document in the dir"""
    with open(os.path.join(tmp_path, "objs.yaml"), "w", encoding="utf-8") as handle:
        yaml.safe_dump_all([make_obj(name="one"), None, make_obj(name="two")], handle)
    with open(os.path.join(tmp_path, "more.yml"), "w", encoding="utf-8") as handle:
        yaml.safe_dump(make_obj(name="three"), handle)
    with open(os.path.join(tmp_path, "ignored.txt"), "w", encoding="utf-8") as handle:
        handle.write("not yaml")

    client = DryRunPlatformClient(resource_dir=str(tmp_path))
    _, objs = client.filter_objects_current_state("Foo", TEST_NAMESPACE)
    assert sorted(obj["metadata"]["name"] for obj in objs) == ["one", "three", "two"]


def test_filter_selectors():
    """Make sure label and field selectors narrow the listing"""
    client = DryRunPlatformClient(
        resources=[
            make_obj(name="a", app="web", tier="frontend"),
            make_obj(name="b", app="web", tier="backend"),
            make_obj(name="c", app="db", tier="backend"),
        ]
    )

    def names(**kwargs):
        _, objs = client.filter_objects_current_state("Foo", TEST_NAMESPACE, **kwargs)
        return sorted(obj["metadata"]["name"] for obj in objs)

    assert names() == ["a", "b", "c"]
    assert names(label_selector="app=web") == ["a", "b"]
    assert names(label_selector="app=web,tier!=frontend") == ["b"]
    assert names(field_selector="metadata.name=c") == ["c"]
    assert names(api_version="foo.bar/v2") == []


@pytest.mark.parametrize(
    ["selector", "expected"],
    [
        ("app", True),
        ("!app", False),
        ("missing", False),
        ("!missing", True),
        ("app=web", True),
        ("app==web", True),
        ("app!=web", False),
        ("tier in (frontend, backend)", True),
        ("tier notin (frontend,backend)", False),
        ("app=web,tier in (db)", False),
        ("", True),
    ],
)
def test_match_selector(selector, expected):
    assert match_selector({"app": "web", "tier": "frontend"}, selector) == expected
