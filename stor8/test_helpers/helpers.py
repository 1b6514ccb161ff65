"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from typing import List, Optional
from unittest import mock
import copy
import inspect
import os

# First Party
import aconfig
import alog

# Local
from stor8 import constants
from stor8.cluster import ClusterSpec
from stor8.component import Component
from stor8.config import library_config as config_detail_dict
from stor8.platform import DryRunPlatformClient

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_CLUSTER_NAME = "px-cluster"
TEST_CLUSTER_UID = "12345678-1234-1234-1234-123456789012"
TEST_NAMESPACE = "test"


## Cluster Specs ###############################################################


def setup_cr(
    name=TEST_CLUSTER_NAME,
    namespace=TEST_NAMESPACE,
    annotations=None,
    spec=None,
    status=None,
    **kwargs,
) -> dict:
    """Build a StorageCluster manifest"""
    cr_dict = kwargs or {}
    cr_dict.setdefault("kind", constants.STORAGE_CLUSTER_KIND)
    cr_dict.setdefault("apiVersion", constants.STORAGE_API_VERSION)
    metadata = cr_dict.setdefault("metadata", {})
    metadata.setdefault("name", name)
    metadata.setdefault("namespace", namespace)
    metadata.setdefault("uid", TEST_CLUSTER_UID)
    if annotations:
        metadata.setdefault("annotations", {}).update(annotations)
    cr_dict.setdefault("spec", {}).update(copy.deepcopy(spec or {}))
    if status is not None:
        cr_dict["status"] = copy.deepcopy(status)
    return cr_dict


def setup_cluster_spec(*args, **kwargs) -> ClusterSpec:
    return ClusterSpec(setup_cr(*args, **kwargs))


## Config ######################################################################


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        if isinstance(val, dict):
            val = aconfig.Config(val, override_env_vars=False)
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


## Failures ####################################################################


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        log.debug4(
            "Running failable mock of [%s] with fail flag: %s", str(method), fail_flag
        )
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            log.debug4("Asserting in failable mock")
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        res = method(*args, **kwargs)
        log.debug4("Passthrough res: %s", res)
        return res

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        log.debug("Not failing on call %d", self.call_count)
        return None


## Platform Client #############################################################


class MockPlatformClient(DryRunPlatformClient):
    """The MockPlatformClient wraps a standard DryRunPlatformClient and adds
    configuration options to simulate failures in each of its operations.
    """

    def __init__(  # pylint: disable=too-many-arguments,too-many-locals
        self,
        create_fail=False,
        create_raise=False,
        apply_fail=False,
        apply_raise=False,
        delete_fail=False,
        delete_raise=False,
        get_state_fail=False,
        get_state_raise=False,
        filter_fail=False,
        filter_raise=False,
        set_status_fail=False,
        set_status_raise=False,
        auto_enable=True,
        resources=None,
        **kwargs,
    ):
        resources = resources or []
        for resource in resources:
            resource.setdefault("apiVersion", "v1")
        super().__init__(resources, **kwargs)

        self.create_fail = "assert" if create_raise else create_fail
        self.apply_fail = "assert" if apply_raise else apply_fail
        self.delete_fail = "assert" if delete_raise else delete_fail
        self.get_state_fail = "assert" if get_state_raise else get_state_fail
        self.filter_fail = "assert" if filter_raise else filter_fail
        self.set_status_fail = "assert" if set_status_raise else set_status_fail

        # If auto-enabling, turn the mocks on now
        if auto_enable:
            self.enable_mocks()

    #######################
    ## Helpers for Tests ##
    #######################

    def enable_mocks(self):
        """Turn the mocks on"""
        self.create = mock.Mock(
            side_effect=get_failable_method(
                self.create_fail, super().create, (False, False)
            )
        )
        self.apply = mock.Mock(
            side_effect=get_failable_method(
                self.apply_fail, super().apply, (False, False)
            )
        )
        self.delete = mock.Mock(
            side_effect=get_failable_method(
                self.delete_fail, super().delete, (False, False)
            )
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.get_state_fail, super().get_object_current_state, (False, None)
            )
        )
        self.filter_objects_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.filter_fail, super().filter_objects_current_state, (False, [])
            )
        )
        self.set_status = mock.Mock(
            side_effect=get_failable_method(
                self.set_status_fail, super().set_status, (False, False)
            )
        )

    def get_obj(self, kind, name, namespace=None, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None


def set_crd_conditions(
    platform_client: DryRunPlatformClient,
    crd: dict,
    conditions: List[dict],
):
    """Overwrite the status conditions on a stored CRD"""
    platform_client.set_status(
        kind=constants.CRD_KIND,
        name=crd["metadata"]["name"],
        namespace=None,
        status={"conditions": conditions},
        api_version=crd.get("apiVersion"),
    )


def activate_crd_when_created(
    platform_client: DryRunPlatformClient,
    crd_name: Optional[str] = None,
    names_accepted: bool = True,
):
    """Simulate the API server establishing a CRD as soon as it is created.
    With names_accepted=False the CRD reports a name conflict instead.
    """

    def activate(crd: dict):
        if names_accepted:
            conditions = [
                {"type": "NamesAccepted", "status": "True"},
                {"type": "Established", "status": "True"},
            ]
        else:
            conditions = [
                {
                    "type": "NamesAccepted",
                    "status": "False",
                    "reason": "MultipleNamesConflict",
                    "message": "plural name is already in use",
                },
                {"type": "Established", "status": "False"},
            ]
        log.debug("Setting conditions on %s: %s", crd["metadata"]["name"], conditions)
        set_crd_conditions(platform_client, crd, conditions)

    platform_client.register_watch(constants.CRD_KIND, activate, name=crd_name)


## Components ##################################################################


class RecordingComponent(Component):
    """Component that records every lifecycle call into a shared call log and
    can be configured to fail or be disabled
    """

    name = "recording"

    def __init__(  # pylint: disable=too-many-arguments
        self,
        name: str,
        priority: int = constants.DEFAULT_COMPONENT_PRIORITY,
        call_log: Optional[list] = None,
        enabled: bool = True,
        paused: bool = False,
        reconcile_error: Optional[Exception] = None,
        delete_error: Optional[Exception] = None,
        initialize_error: Optional[Exception] = None,
        predicate_error: Optional[Exception] = None,
    ):
        self.name = name
        self.priority = priority
        super().__init__()
        self.call_log = call_log if call_log is not None else []
        self.enabled = enabled
        self.paused = paused
        self.reconcile_error = reconcile_error
        self.delete_error = delete_error
        self.initialize_error = initialize_error
        self.predicate_error = predicate_error
        self.initialize_count = 0

    def initialize(self, platform_client, platform_version, recorder=None):
        self.initialize_count += 1
        self.call_log.append((self.name, "initialize"))
        if self.initialize_error is not None:
            raise self.initialize_error
        super().initialize(platform_client, platform_version, recorder)

    def is_enabled(self, spec):
        if self.predicate_error is not None:
            raise self.predicate_error
        return self.enabled

    def is_paused_for_migration(self, spec):
        return self.paused

    def reconcile(self, spec):
        self.call_log.append((self.name, "reconcile"))
        if self.reconcile_error is not None:
            raise self.reconcile_error
        self.set_flag("reconciled")

    def delete(self, spec):
        self.call_log.append((self.name, "delete"))
        if self.delete_error is not None:
            raise self.delete_error

    def mark_deleted(self):
        self.call_log.append((self.name, "mark_deleted"))
        super().mark_deleted()

    def calls(self, operation: str) -> int:
        return sum(
            1 for name, op in self.call_log if name == self.name and op == operation
        )
