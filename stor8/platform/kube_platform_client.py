"""
This PlatformClient is responsible for delegating cluster operations to the
openshift dynamic client. It is the one that will be used when the operator is
running in the cluster or outside the cluster making live changes.
"""
# Standard
from collections import namedtuple
from typing import Callable, List, Optional, Tuple
import copy
import threading
import time

# Third Party
from openshift.dynamic import DynamicClient
from openshift.dynamic.apply import recursive_diff
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from openshift.dynamic.resource import Resource
import kubernetes

# First Party
import alog

# Local
from .. import config
from ..exceptions import assert_cluster
from ..version import PlatformVersion
from .base import PlatformClientBase

log = alog.use_channel("KUBEC")

# The field manager name used for server side apply
FIELD_MANAGER = "stor8"

# Metadata fields that change on every write and never indicate a meaningful
# difference
_VOLATILE_METADATA_FIELDS = [
    "resourceVersion",
    "generation",
    "managedFields",
    "uid",
    "creationTimestamp",
]


class KubePlatformClient(PlatformClientBase):
    """This PlatformClient uses the openshift DynamicClient to interact with
    the cluster
    """

    def __init__(self, dynamic_client: Optional[DynamicClient] = None):
        """
        Args:
            dynamic_client:  Optional[DynamicClient]
                An already configured client. If not given, one is created
                lazily from in-cluster or kubeconfig settings.
        """
        self._client = dynamic_client

        # Status writes are serialized to avoid 409 Conflict errors between
        # concurrent callers
        self._status_lock = threading.Lock()

    @property
    def client(self) -> DynamicClient:
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    ## Interface ###############################################################

    @alog.logged_function(log.debug2)
    def create(self, resource_definition: dict) -> Tuple[bool, bool]:
        return self._retried_operation(resource_definition, self._create)

    @alog.logged_function(log.debug2)
    def apply(self, resource_definition: dict) -> Tuple[bool, bool]:
        return self._retried_operation(resource_definition, self._apply)

    @alog.logged_function(log.debug2)
    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        resource_definition = {
            "kind": kind,
            "apiVersion": api_version,
            "metadata": {"name": name, "namespace": namespace},
        }
        return self._retried_operation(
            resource_definition, self._delete, require_api_version=False
        )

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, None

        if not namespace:
            resources.namespaced = False

        try:
            resource = resources.get(name=name, namespace=namespace)
        except ForbiddenError:
            log.debug(
                "Fetching objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, None
        except NotFoundError:
            log.debug2(
                "No object named [%s/%s] found in namespace [%s]", kind, name, namespace
            )
            return True, None

        return True, resource.to_dict()

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, []

        if not namespace:
            resources.namespaced = False

        try:
            list_obj = resources.get(
                label_selector=label_selector,
                field_selector=field_selector,
                namespace=namespace,
            )
        except ForbiddenError:
            log.debug(
                "Listing objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, []
        except NotFoundError:
            log.debug2("No objects of kind [%s] found in namespace [%s]", kind, namespace)
            return True, []

        return True, list_obj.to_dict().get("items", [])

    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        resource_definition = {
            "kind": kind,
            "apiVersion": api_version,
            "metadata": {"name": name, "namespace": namespace},
        }
        return self._retried_operation(
            resource_definition,
            self._set_status,
            require_api_version=False,
            status=status,
        )

    def get_version(self) -> PlatformVersion:
        version_info = kubernetes.client.VersionApi(self.client.client).get_code()
        log.debug2("Platform reported version %s", version_info.git_version)
        return PlatformVersion.parse(version_info.git_version)

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client() -> DynamicClient:
        """Create a DynamicClient that will work based on where the operator is
        running
        """
        try:
            log.debug2("Running with in-cluster config")
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            return DynamicClient(kubernetes.client.ApiClient(kube_config))
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(
        self, kind: str, api_version: Optional[str]
    ) -> Optional[Resource]:
        """Get the resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            try:
                resources = self.client.resources.get(
                    short_names=[kind], api_version=api_version
                )
            except (ResourceNotFoundError, ResourceNotUniqueError):
                log.debug(
                    "No objects of kind [%s] found or multiple objects matching request found",
                    kind,
                )
        return resources

    # Internal struct to hold the key resource identifier elements
    _ResourceIdentifiers = namedtuple(
        "ResourceIdentifiers", ["api_version", "kind", "name", "namespace"]
    )

    @classmethod
    def _get_resource_identifiers(cls, resource_definition, require_api_version=True):
        """Helper for getting the required parts of a single resource definition"""
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        name = resource_definition.get("metadata", {}).get("name")
        namespace = resource_definition.get("metadata", {}).get("namespace")
        assert None not in [kind, name], "Cannot operate on resource without kind or name"
        assert (
            not require_api_version or api_version is not None
        ), "Cannot operate on resource without apiVersion"
        return cls._ResourceIdentifiers(api_version, kind, name, namespace)

    @classmethod
    def _manifest_diff(cls, manifest_a: dict, manifest_b: dict) -> bool:
        """Compare two manifests for meaningful diff while ignoring fields that
        always change
        """
        manifest_a = copy.deepcopy(manifest_a)
        manifest_b = copy.deepcopy(manifest_b)
        for metadata_field in _VOLATILE_METADATA_FIELDS:
            manifest_a.get("metadata", {}).pop(metadata_field, None)
            manifest_b.get("metadata", {}).pop(metadata_field, None)
        change = bool(recursive_diff(manifest_a, manifest_b))
        log.debug3("Found change? %s", change)
        return change

    def _retried_operation(
        self,
        resource_definition: dict,
        operation: Callable,
        require_api_version: bool = True,
        **kwargs,
    ) -> Tuple[bool, bool]:
        """Shared wrapper for executing a client operation with retries on
        write conflicts. Any other failure is reported as an unsuccessful
        operation.
        """
        res_id = self._get_resource_identifiers(
            resource_definition, require_api_version=require_api_version
        )
        remaining_retries = config.client_retries
        while True:
            try:
                return True, operation(res_id, resource_definition, **kwargs)
            except ConflictError as err:
                if not remaining_retries:
                    log.warning(
                        "Operation [%s] on [%s/%s] failed with conflict: %s",
                        operation.__name__,
                        res_id.kind,
                        res_id.name,
                        err,
                    )
                    return False, False
                backoff_duration = config.retry_backoff_base_seconds * (
                    config.client_retries - remaining_retries + 1
                )
                log.debug2(
                    "Conflict on [%s/%s]. Retrying in %fs",
                    res_id.kind,
                    res_id.name,
                    backoff_duration,
                )
                remaining_retries -= 1
                time.sleep(backoff_duration)
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "Operation [%s] on [%s/%s] failed to execute: %s",
                    operation.__name__,
                    res_id.kind,
                    res_id.name,
                    err,
                    exc_info=True,
                )
                return False, False

    ################
    ## Operations ##
    ################

    def _handle_for(self, res_id) -> Resource:
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(
            resource_handle,
            (
                "Failed to fetch resource handle for "
                + f"{res_id.namespace}/{res_id.api_version}/{res_id.kind}"
            ),
        )
        if not res_id.namespace:
            resource_handle.namespaced = False
        return resource_handle

    def _create(self, res_id, resource_definition: dict) -> bool:
        """Create the resource, treating an existing resource as no change"""
        resource_handle = self._handle_for(res_id)
        try:
            resource_handle.create(body=resource_definition, namespace=res_id.namespace)
        except ConflictError:
            # 409 on create means AlreadyExists, which is not an error here
            log.debug2("[%s/%s] already exists", res_id.kind, res_id.name)
            return False
        log.debug("Created [%s/%s] in %s", res_id.kind, res_id.name, res_id.namespace)
        return True

    def _apply(self, res_id, resource_definition: dict) -> bool:
        """Server side apply the resource if it differs from the current state"""
        success, current = self.get_object_current_state(
            kind=res_id.kind,
            name=res_id.name,
            namespace=res_id.namespace,
            api_version=res_id.api_version,
        )
        assert_cluster(
            success,
            f"Failed to fetch current state for {res_id.namespace}/{res_id.kind}/{res_id.name}",
        )
        current = current or {}
        if not self._manifest_diff(current, resource_definition):
            return False

        resource_definition = copy.deepcopy(resource_definition)
        resource_definition.setdefault("metadata", {})["managedFields"] = None
        resource_handle = self._handle_for(res_id)
        try:
            applied = resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=FIELD_MANAGER,
            ).to_dict()
        except ConflictError:
            log.debug(
                "Overriding field manager conflict for [%s/%s]",
                res_id.kind,
                res_id.name,
            )
            applied = resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=FIELD_MANAGER,
                force_conflicts=True,
            ).to_dict()
        return self._manifest_diff(current, applied)

    def _delete(self, res_id, _resource_definition: dict) -> bool:
        """Delete the resource if it exists"""
        try:
            resource_handle = self.client.resources.get(
                api_version=res_id.api_version, kind=res_id.kind
            )
            if not res_id.namespace:
                resource_handle.namespaced = False
            resource_handle.delete(name=res_id.name, namespace=res_id.namespace)
        except (ResourceNotFoundError, NotFoundError) as err:
            log.debug2(
                "Valid error caught when deleting [%s/%s]: %s",
                res_id.kind,
                res_id.name,
                err,
            )
            return False
        return True

    def _set_status(self, res_id, _resource_definition: dict, status: dict) -> bool:
        """Overwrite the status subresource if it differs"""
        resource_handle = self._handle_for(res_id)
        with self._status_lock:
            resource = resource_handle.get(
                name=res_id.name, namespace=res_id.namespace
            ).to_dict()
            if resource.get("status") == status:
                log.debug2("Status has not changed. No update")
                return False
            resource["status"] = status
            resource_handle.status.replace(body=resource)
            return True
