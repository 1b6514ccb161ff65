"""
Tests for the KubePlatformClient using a mocked DynamicClient
"""
# Standard
from unittest import mock
import copy

# Third Party
from kubernetes.client.rest import ApiException
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
)
import kubernetes
import pytest

# Local
from stor8.platform import KubePlatformClient
from stor8.platform.kube_platform_client import FIELD_MANAGER
from stor8.test_helpers.helpers import TEST_NAMESPACE, library_config
from stor8.version import PlatformVersion

## Helpers #####################################################################


def api_error(error_type, status):
    return error_type(ApiException(status=status, reason="test"))


def make_obj(name="foobar", namespace=TEST_NAMESPACE, spec=None):
    return {
        "apiVersion": "foo.bar/v1",
        "kind": "Foo",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec if spec is not None else {"a": 1},
    }


def setup_client(current=None, get_error=None):
    """Build a client whose resource handle reports the given current state"""
    dynamic_client = mock.MagicMock()
    handle = mock.MagicMock()
    dynamic_client.resources.get.return_value = handle
    if get_error is not None:
        handle.get.side_effect = get_error
    else:
        handle.get.return_value.to_dict.side_effect = lambda: copy.deepcopy(current)
    return KubePlatformClient(dynamic_client), dynamic_client, handle


## Create ######################################################################


def test_create_new():
    client, _, handle = setup_client()
    obj = make_obj()
    assert client.create(obj) == (True, True)
    handle.create.assert_called_once_with(body=obj, namespace=TEST_NAMESPACE)


def test_create_already_exists():
    """Make sure a 409 on create is a success with no change"""
    client, _, handle = setup_client()
    handle.create.side_effect = api_error(ConflictError, 409)
    assert client.create(make_obj()) == (True, False)
    handle.create.assert_called_once()


def test_create_failure():
    client, _, handle = setup_client()
    handle.create.side_effect = RuntimeError("server unavailable")
    assert client.create(make_obj()) == (False, False)


def test_create_cluster_scoped():
    """Make sure objects without a namespace are created cluster wide"""
    client, _, handle = setup_client()
    client.create(make_obj(namespace=None))
    assert handle.namespaced is False


def test_create_requires_api_version():
    client, _, _ = setup_client()
    obj = make_obj()
    del obj["apiVersion"]
    with pytest.raises(AssertionError):
        client.create(obj)


## Apply #######################################################################


def test_apply_no_change():
    """Make sure an unchanged object is not applied"""
    current = make_obj()
    current["metadata"]["resourceVersion"] = "1234"
    client, _, handle = setup_client(current=current)
    assert client.apply(make_obj()) == (True, False)
    handle.server_side_apply.assert_not_called()


def test_apply_change():
    client, _, handle = setup_client(current=make_obj())
    desired = make_obj(spec={"a": 2})
    handle.server_side_apply.return_value.to_dict.return_value = desired
    assert client.apply(desired) == (True, True)
    kwargs = handle.server_side_apply.call_args[1]
    assert kwargs["field_manager"] == FIELD_MANAGER
    assert "force_conflicts" not in kwargs


def test_apply_forces_field_manager_conflicts():
    client, _, handle = setup_client(current=make_obj())
    desired = make_obj(spec={"a": 2})
    result = mock.MagicMock()
    result.to_dict.return_value = desired
    handle.server_side_apply.side_effect = [api_error(ConflictError, 409), result]
    assert client.apply(desired) == (True, True)
    assert handle.server_side_apply.call_count == 2
    assert handle.server_side_apply.call_args[1]["force_conflicts"] is True


## Delete ######################################################################


def test_delete():
    client, dynamic_client, handle = setup_client()
    assert client.delete("Foo", "foobar", TEST_NAMESPACE, "foo.bar/v1") == (True, True)
    handle.delete.assert_called_once_with(name="foobar", namespace=TEST_NAMESPACE)
    dynamic_client.resources.get.assert_called_with(api_version="foo.bar/v1", kind="Foo")


@pytest.mark.parametrize(
    "error",
    [api_error(NotFoundError, 404), ResourceNotFoundError("no such kind")],
)
def test_delete_already_absent(error):
    """Make sure a missing object or kind is a success with no change"""
    client, _, handle = setup_client()
    handle.delete.side_effect = error
    assert client.delete("Foo", "foobar", TEST_NAMESPACE) == (True, False)


## Reads #######################################################################


def test_get_object_current_state():
    client, _, handle = setup_client(current=make_obj())
    assert client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE) == (
        True,
        make_obj(),
    )
    handle.get.assert_called_once_with(name="foobar", namespace=TEST_NAMESPACE)


@pytest.mark.parametrize(
    ["error", "expected"],
    [
        (api_error(NotFoundError, 404), (True, None)),
        (api_error(ForbiddenError, 403), (False, None)),
    ],
)
def test_get_object_current_state_errors(error, expected):
    client, _, _ = setup_client(get_error=error)
    assert client.get_object_current_state("Foo", "foobar", TEST_NAMESPACE) == expected


def test_get_unknown_kind():
    """Make sure a kind the server does not know is reported as absent"""
    client, dynamic_client, _ = setup_client()
    dynamic_client.resources.get.side_effect = ResourceNotFoundError("nope")
    assert client.get_object_current_state("Nope", "foobar") == (True, None)
    assert client.filter_objects_current_state("Nope") == (True, [])
    assert dynamic_client.resources.get.call_count == 4


def test_filter_objects_current_state():
    client, _, handle = setup_client(
        current={"items": [make_obj(name="a"), make_obj(name="b")]}
    )
    success, objs = client.filter_objects_current_state(
        "Foo", TEST_NAMESPACE, label_selector="app=web"
    )
    assert success
    assert [obj["metadata"]["name"] for obj in objs] == ["a", "b"]
    handle.get.assert_called_once_with(
        label_selector="app=web", field_selector=None, namespace=TEST_NAMESPACE
    )


def test_filter_forbidden():
    client, _, _ = setup_client(get_error=api_error(ForbiddenError, 403))
    assert client.filter_objects_current_state("Foo", TEST_NAMESPACE) == (False, [])


## Status ######################################################################


def test_set_status_unchanged():
    current = make_obj()
    current["status"] = {"phase": "Ready"}
    client, _, handle = setup_client(current=current)
    assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"phase": "Ready"}) == (
        True,
        False,
    )
    handle.status.replace.assert_not_called()


def test_set_status_changed():
    client, _, handle = setup_client(current=make_obj())
    assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"phase": "Ready"}) == (
        True,
        True,
    )
    body = handle.status.replace.call_args[1]["body"]
    assert body["status"] == {"phase": "Ready"}


def test_conflicts_retried():
    """Make sure a write conflict is retried with backoff"""
    client, _, handle = setup_client(current=make_obj())
    handle.status.replace.side_effect = [api_error(ConflictError, 409), None]
    with library_config(client_retries=2, retry_backoff_base_seconds=0):
        assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"a": 1}) == (
            True,
            True,
        )
    assert handle.status.replace.call_count == 2


def test_conflicts_exhausted():
    """Make sure persistent conflicts give up after the configured retries"""
    client, _, handle = setup_client(current=make_obj())
    handle.status.replace.side_effect = api_error(ConflictError, 409)
    with library_config(client_retries=1, retry_backoff_base_seconds=0):
        assert client.set_status("Foo", "foobar", TEST_NAMESPACE, {"a": 1}) == (
            False,
            False,
        )
    assert handle.status.replace.call_count == 2


## Version and Setup ###########################################################


def test_get_version():
    client, dynamic_client, _ = setup_client()
    with mock.patch("kubernetes.client.VersionApi") as version_api:
        version_api.return_value.get_code.return_value.git_version = "v1.21.2-gke.1500"
        assert client.get_version() == PlatformVersion(1, 21, 2)
    version_api.assert_called_once_with(dynamic_client.client)


def test_lazy_client_setup_out_of_cluster():
    """Make sure the client falls back to kubeconfig outside of a cluster"""
    client = KubePlatformClient()
    with mock.patch(
        "kubernetes.config.load_incluster_config",
        side_effect=kubernetes.config.ConfigException,
    ):
        # The kubeconfig loader is patched to fail for all tests
        with pytest.raises(RuntimeError):
            client.client  # noqa: B018


def test_lazy_client_setup_in_cluster():
    """Make sure the in-cluster config is used when available"""
    client = KubePlatformClient()
    with mock.patch("kubernetes.config.load_incluster_config"), mock.patch(
        "stor8.platform.kube_platform_client.DynamicClient"
    ) as dynamic_client:
        assert client.client is dynamic_client.return_value
        assert client.client is dynamic_client.return_value
    dynamic_client.assert_called_once()
